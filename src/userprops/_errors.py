"""Exception hierarchy for userprops.

Tree primitives raise synchronously. Expression, validation and watcher failures
never escape the pipeline; they are recorded on nodes or in result structures.
"""


class UserPropsError(Exception):
    """Base class for all userprops errors."""


class PathError(UserPropsError, ValueError):
    """Malformed path or traversal through a node that cannot hold children."""


class InvalidNodeTypeError(UserPropsError, TypeError):
    """A node type is not valid for the requested operation."""


class ExpressionError(UserPropsError):
    """Compile-time or run-time failure of a user snippet."""


class ForbiddenTokenError(ExpressionError):
    """A snippet uses a construct that could escape the sandbox."""


class StepLimitExceededError(ExpressionError):
    """A snippet ran more loop iterations than its step budget allows."""


class SnippetTimeoutError(ExpressionError):
    """A snippet ran past its wall-clock deadline."""


class TreeImportError(UserPropsError, ValueError):
    """A serialized tree is malformed, unversioned or of an unknown version."""


class ConfigError(UserPropsError):
    """Error in userprops configuration."""
