"""
Detector-response parametrizations and their storage.

- base: Parametrization ABC and class registry
- functions: reference BetheBloch / TPCReso implementations
- blob: versioned blob stores (local directory, HTTP, caching wrapper)
- store: ParametrizationStore and config helpers
"""

from tpcpid.parametrization.base import (
    KINDS,
    PARAMETRIZATION_REGISTRY,
    Parametrization,
    get_parametrization_class,
    parametrization_from_dict,
    register_parametrization,
)
from tpcpid.parametrization.functions import BetheBloch, TPCReso, bethe_bloch_aleph
from tpcpid.parametrization.blob import (
    BlobObject,
    BlobStore,
    CachingBlobStore,
    HttpBlobStore,
    LocalBlobStore,
    timestamp_now,
)
from tpcpid.parametrization.store import (
    ParametrizationSource,
    ParametrizationStore,
    load_response,
    store_from_config,
)

__all__ = [
    "KINDS",
    "PARAMETRIZATION_REGISTRY",
    "Parametrization",
    "get_parametrization_class",
    "parametrization_from_dict",
    "register_parametrization",
    "BetheBloch",
    "TPCReso",
    "bethe_bloch_aleph",
    "BlobObject",
    "BlobStore",
    "CachingBlobStore",
    "HttpBlobStore",
    "LocalBlobStore",
    "timestamp_now",
    "ParametrizationSource",
    "ParametrizationStore",
    "load_response",
    "store_from_config",
]
