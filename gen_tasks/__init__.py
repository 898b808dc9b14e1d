from .errors import (
    GenerationError,
    TaskValidationError,
    OwnershipError,
    TaskNotFoundError,
    ProviderSubmissionError,
    ProviderStatusError,
    AssetMirrorError,
)
from .models import (
    TaskStatus,
    TaskSource,
    TaskMode,
    TaskSnapshot,
    derive_mode,
)

__all__ = [
    'GenerationError',
    'TaskValidationError',
    'OwnershipError',
    'TaskNotFoundError',
    'ProviderSubmissionError',
    'ProviderStatusError',
    'AssetMirrorError',
    'TaskStatus',
    'TaskSource',
    'TaskMode',
    'TaskSnapshot',
    'derive_mode',
]
