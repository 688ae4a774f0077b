"""
Fallback Handling
Builds the ordered candidate chain walked by the gateway for one request.
"""

from typing import Iterable, List

from ai_gateway.services.provider_registry import DEFAULT_FALLBACK_MODELS
from ai_gateway.utils.logger import setup_logger

logger = setup_logger(__name__)


class FallbackService:
    """Holds the global fallback sequence and expands it per request"""

    def __init__(self, fallback_models: Iterable[str] = DEFAULT_FALLBACK_MODELS):
        self.fallback_queue: List[str] = list(fallback_models)

    def get_fallback_queue(self) -> List[str]:
        """Returns the ordered list of fallback models"""
        return self.fallback_queue.copy()

    def build_chain(self, primary_model: str) -> List[str]:
        """
        Requested model first, then the fallback sequence with the requested
        model and duplicates removed. Order preserved, first occurrence wins.
        """
        chain = [primary_model]
        for model in self.fallback_queue:
            if model not in chain:
                chain.append(model)

        logger.debug(f"Candidate chain for {primary_model}: {chain}")
        return chain
