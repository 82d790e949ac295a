"""Handler modules for CRD resources."""

# Import handlers to register them - all handlers register themselves via @kopf decorators
from . import kubeconfig  # noqa: F401
from . import kubeconfig_sync  # noqa: F401
from . import secret  # noqa: F401
from . import user  # noqa: F401
