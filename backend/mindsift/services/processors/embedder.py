"""
Embedding Service

Embedding generation with a local sentence-transformers model.

Model: sentence-transformers/all-MiniLM-L6-v2 (default)
- 384 dimensions
- Fast enough for CPU inference
- Free (no API costs)

Features:
---------
- CPU/CUDA/MPS device support
- Inference runs in a worker thread so the event loop stays free
- Normalized embeddings, so cosine similarity is a dot product
- Model load failures surface as DownstreamUnavailable
"""

import asyncio
import logging
from typing import List, Optional, Protocol

import numpy as np
import torch
from sentence_transformers import SentenceTransformer

from mindsift.core.config import settings
from mindsift.core.errors import DownstreamUnavailable

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """Anything that turns a text into a fixed-dimension vector."""

    async def embed_text(self, text: str) -> List[float]:
        ...


class EmbeddingService:
    """
    Service for generating embeddings using sentence-transformers.

    Usage:
    ------
    embedder = EmbeddingService()
    await embedder.initialize()

    # Single text
    embedding = await embedder.embed_text("How do I tune the carburetor?")
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        batch_size: Optional[int] = None,
        device: Optional[str] = None,
        normalize: bool = True
    ):
        self.model_name = model_name or settings.EMBEDDING_MODEL
        self.batch_size = batch_size or settings.EMBEDDING_BATCH_SIZE
        self.device = device or settings.EMBEDDING_DEVICE
        self.normalize = normalize

        self.model: Optional[SentenceTransformer] = None
        self._initialized = False

        self._validate_device()

    def _validate_device(self) -> None:
        """Fall back to CPU when the configured accelerator is missing."""
        if self.device == "cuda" and not torch.cuda.is_available():
            logger.warning("CUDA not available, falling back to CPU")
            self.device = "cpu"
        elif self.device == "mps" and not torch.backends.mps.is_available():
            logger.warning("MPS not available, falling back to CPU")
            self.device = "cpu"

    async def initialize(self) -> None:
        """
        Load the model (downloading it on first use).

        Raises:
            DownstreamUnavailable: If the model cannot be loaded
        """
        if self._initialized:
            return

        try:
            logger.info(f"Loading embedding model: {self.model_name} on {self.device}")
            self.model = await asyncio.to_thread(
                SentenceTransformer,
                self.model_name,
                device=self.device
            )
        except Exception as e:
            logger.error(f"Failed to load embedding model: {e}")
            raise DownstreamUnavailable(f"Embedding model {self.model_name} unavailable") from e

        self._initialized = True
        logger.info(
            f"Embedding model loaded. "
            f"Dimension: {self.get_embedding_dimension()}, Device: {self.device}"
        )

    def get_embedding_dimension(self) -> int:
        """Model dimension, or the configured one before the model is loaded."""
        if not self._initialized or self.model is None:
            return settings.EMBEDDING_DIMENSION
        return self.model.get_sentence_embedding_dimension()

    async def embed_text(self, text: str) -> List[float]:
        """
        Generate the embedding of a single text.

        Empty text maps to the zero vector.

        Raises:
            RuntimeError: If the service was not initialized
        """
        if not self._initialized:
            raise RuntimeError("Embedding service not initialized. Call initialize() first.")

        if not text or not text.strip():
            logger.warning("Empty text provided for embedding")
            return [0.0] * self.get_embedding_dimension()

        embedding = await asyncio.to_thread(self._encode, text)
        return embedding.tolist()

    def _encode(self, text: str) -> np.ndarray:
        """Run the model (sync, executes in a worker thread)."""
        return self.model.encode(
            text,
            batch_size=self.batch_size,
            normalize_embeddings=self.normalize,
            show_progress_bar=False,
            convert_to_numpy=True,
        )

    async def shutdown(self) -> None:
        """Release the model and any GPU memory."""
        if self.model is not None:
            if self.device == "cuda":
                torch.cuda.empty_cache()
            del self.model
            self.model = None

        self._initialized = False
        logger.info("Embedding service shut down")


# ========================================
# Global Instance Management
# ========================================

_embedding_service: Optional[EmbeddingService] = None


async def get_embedding_service() -> EmbeddingService:
    """
    Get or create the global embedding service instance.

    Loads the model only once per process.
    """
    global _embedding_service

    if _embedding_service is None:
        service = EmbeddingService()
        await service.initialize()
        _embedding_service = service

    return _embedding_service


async def shutdown_embedding_service() -> None:
    """Shutdown the global embedding service at application shutdown."""
    global _embedding_service

    if _embedding_service is not None:
        await _embedding_service.shutdown()
        _embedding_service = None
