# noqa: D104 - package initialization
from .logging import configure_structured_logging  # noqa: F401
from .metrics import metrics_blueprint, record_sync_failure, record_sync_success  # noqa: F401
from .tracing import init_tracing, sync_span  # noqa: F401
