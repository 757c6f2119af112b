"""Backend loader: maps each kind to a factory and reports load outcomes."""

from typing import Callable, Optional

from ..interfaces import BackendHandle
from ..logging_utils import get_logger
from ..models import BackendConfig, BackendKind, LoadResult
from . import deepfilter, dtln, koala, rnnoise, spectral

logger = get_logger(__name__)

BackendFactory = Callable[[BackendConfig], BackendHandle]

DEFAULT_FACTORIES: dict[BackendKind, BackendFactory] = {
    BackendKind.SPECTRAL: spectral.create_handle,
    BackendKind.RNNOISE: rnnoise.create_handle,
    BackendKind.DEEPFILTER: deepfilter.create_handle,
    BackendKind.DTLN: dtln.create_handle,
    BackendKind.KOALA: koala.create_handle,
}


class BackendLoader:
    """Loads backends on demand.

    Factories import their compiled modules lazily, so a missing optional
    dependency only surfaces as a failed ``LoadResult`` for that backend.
    """

    def __init__(self, factories: Optional[dict[BackendKind, BackendFactory]] = None) -> None:
        self._factories = dict(DEFAULT_FACTORIES if factories is None else factories)

    def register(self, kind: BackendKind, factory: BackendFactory) -> None:
        """Add or replace the factory for ``kind``."""
        self._factories[kind] = factory

    def supports(self, kind: BackendKind) -> bool:
        return kind in self._factories

    def load(self, kind: BackendKind, config: Optional[BackendConfig] = None) -> LoadResult:
        """
        Create a backend handle, capturing any failure in the result.

        Blocking: factories may import modules and read model weights, so
        async callers run this in a worker thread.

        Args:
            kind: Backend to load
            config: Backend options; defaults apply when omitted

        Returns:
            LoadResult holding either the handle or an error description
        """
        factory = self._factories.get(kind)
        if factory is None:
            return LoadResult(kind, error=f"no factory registered for {kind.value}")

        try:
            handle = factory(config or BackendConfig())
        except Exception as e:
            logger.warning(f"⚠️ Failed to load {kind.value} backend: {e}")
            return LoadResult(kind, error=f"{type(e).__name__}: {e}")

        logger.debug(
            f"✅ Loaded {kind.value} backend ({handle.sample_rate} Hz, "
            f"{handle.frame_length}-sample frames)"
        )
        return LoadResult(kind, handle=handle)


_default_loader: Optional[BackendLoader] = None


def get_default_loader() -> BackendLoader:
    """Process-wide loader with the built-in factories."""
    global _default_loader
    if _default_loader is None:
        _default_loader = BackendLoader()
    return _default_loader
