from .paths import get_path, set_path, unset_path, iter_nodes, Node
from .history import ModifiedTracker
from .settings import DatabaseSettingsDict, HandlerSettings
from .diff import diff
