import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..core.errors import GatewayExhausted
from ..runtime import Runtime
from .deps import get_runtime

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/healthz")
async def health_check(runtime: Runtime = Depends(get_runtime)) -> Dict[str, Any]:
    """Liveness plus a cheap RPC probe through the endpoint pool"""
    rpc: Dict[str, Any]
    try:
        block = await runtime.chain.block_number()
        rpc = {"status": "healthy", "block": block, "endpoint": runtime.pool.current.url}
    except GatewayExhausted as exc:
        logger.warning("Health probe failed: %s", exc.message)
        rpc = {"status": "unavailable", "endpoint": runtime.pool.current.url}

    return {
        "status": "healthy" if rpc["status"] == "healthy" else "degraded",
        "chainId": runtime.settings.chain_id,
        "rpc": rpc,
        "providers": [provider.name for provider in runtime.aggregator.providers],
        "subscribers": runtime.events.subscriber_count,
    }
