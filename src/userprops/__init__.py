"""Reactive user properties: typed property trees with expressions, validation and watchers."""

__all__ = [
    "CIRCULAR_DEPENDENCY",
    "SCHEMA_VERSION",
    "VALIDATION_PRESETS",
    "ConfigError",
    "DependencyGraph",
    "DiffLine",
    "DiffLineType",
    "EngineConfig",
    "EventBus",
    "EventType",
    "ExpressionError",
    "ExpressionGraph",
    "ExpressionReport",
    "ForbiddenTokenError",
    "GraphEdge",
    "GraphNode",
    "InvalidNodeTypeError",
    "Node",
    "NodeMeta",
    "NodeType",
    "PathEntry",
    "PathError",
    "PipelineCompletePayload",
    "PipelineMetrics",
    "PipelineResult",
    "Ref",
    "ResourceGuard",
    "SnippetTemplate",
    "SnippetTimeoutError",
    "StepLimitExceededError",
    "Telemetry",
    "TreeImportError",
    "UserPropsError",
    "UserPropsEvent",
    "UserPropsRuntime",
    "ValidationRules",
    "Watcher",
    "WatcherLog",
    "WatcherResult",
    "add_child_to_object",
    "add_watcher",
    "apply_validation_preset",
    "bind_user_prop_to_component_prop",
    "build_expression_dependency_graph",
    "build_expression_template",
    "build_watcher_snapshot",
    "build_watcher_template",
    "clear_expression_at_path",
    "clear_reference_at_path",
    "clear_validation_at_path",
    "clone_node",
    "coerce_to_type",
    "create_node",
    "delete_at_path",
    "emit_user_props_event",
    "engine_config",
    "ensure_tree",
    "evaluate_expressions",
    "evaluate_pipeline",
    "export_tree",
    "extract_expression_deps",
    "flatten_snapshot",
    "flatten_tree_to_legacy_map",
    "from_python",
    "generate_line_diff",
    "get_config",
    "get_engine_config",
    "get_node_at_path",
    "get_runtime",
    "get_user_props_telemetry",
    "import_tree",
    "infer_type_from_string",
    "list_expression_dependents",
    "list_expression_templates",
    "list_paths",
    "list_watcher_templates",
    "list_watchers",
    "migrate_flat_map_to_tree",
    "on_user_props_event",
    "push_item_to_array",
    "remove_watcher",
    "reorder_array_item",
    "reset_user_props_telemetry",
    "run_expression_phase",
    "run_snippet",
    "run_watchers",
    "search_paths",
    "set_expression_at_path",
    "set_global_flag",
    "set_namespace",
    "set_node_at_path",
    "set_primitive_smart",
    "set_primitive_value_at_path",
    "set_reference_at_path",
    "to_python",
    "touch_legacy_map",
    "traverse_and_sync_references",
    "unbind_user_prop",
    "update_node_from_python",
    "update_validation",
    "update_watcher",
    "validate_tree",
]

from ._binding import (
    bind_user_prop_to_component_prop,
    traverse_and_sync_references,
    unbind_user_prop,
    update_node_from_python,
)
from ._config import EngineConfig, engine_config, get_config, get_engine_config
from ._diff import DiffLine, DiffLineType, generate_line_diff
from ._errors import (
    ConfigError,
    ExpressionError,
    ForbiddenTokenError,
    InvalidNodeTypeError,
    PathError,
    SnippetTimeoutError,
    StepLimitExceededError,
    TreeImportError,
    UserPropsError,
)
from ._eval_engine import (
    CIRCULAR_DEPENDENCY,
    VALIDATION_PRESETS,
    ExpressionReport,
    PipelineMetrics,
    PipelineResult,
    WatcherLog,
    WatcherResult,
    apply_validation_preset,
    build_watcher_snapshot,
    evaluate_expressions,
    evaluate_pipeline,
    run_expression_phase,
    run_watchers,
    validate_tree,
)
from ._graph import (
    DependencyGraph,
    ExpressionGraph,
    GraphEdge,
    GraphNode,
    build_expression_dependency_graph,
    extract_expression_deps,
    list_expression_dependents,
)
from ._io import SCHEMA_VERSION, export_tree, import_tree
from ._legacy import ensure_tree, flatten_tree_to_legacy_map, migrate_flat_map_to_tree, touch_legacy_map
from ._meta import (
    add_watcher,
    clear_expression_at_path,
    clear_reference_at_path,
    clear_validation_at_path,
    list_watchers,
    remove_watcher,
    set_expression_at_path,
    set_namespace,
    set_reference_at_path,
    update_validation,
    update_watcher,
)
from ._node import (
    Node,
    NodeMeta,
    NodeType,
    Ref,
    ValidationRules,
    Watcher,
    clone_node,
    coerce_to_type,
    create_node,
    from_python,
    infer_type_from_string,
    to_python,
)
from ._path import (
    PathEntry,
    add_child_to_object,
    delete_at_path,
    flatten_snapshot,
    get_node_at_path,
    list_paths,
    push_item_to_array,
    reorder_array_item,
    search_paths,
    set_global_flag,
    set_node_at_path,
    set_primitive_smart,
    set_primitive_value_at_path,
)
from ._sandbox import ResourceGuard, run_snippet
from ._telemetry import (
    EventBus,
    EventType,
    PipelineCompletePayload,
    Telemetry,
    UserPropsEvent,
    UserPropsRuntime,
    emit_user_props_event,
    get_runtime,
    get_user_props_telemetry,
    on_user_props_event,
    reset_user_props_telemetry,
)
from ._templates import (
    SnippetTemplate,
    build_expression_template,
    build_watcher_template,
    list_expression_templates,
    list_watcher_templates,
)
