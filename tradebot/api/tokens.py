from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.rpc.erc20 import checksum_address
from ..db.models import TokenRow
from ..runtime import Runtime
from .deps import get_runtime


router = APIRouter()


def token_to_dict(row: TokenRow) -> Dict[str, Any]:
    return {
        "address": row.address,
        "symbol": row.symbol,
        "name": row.name,
        "decimals": row.decimals,
        "priceUsd": row.price_usd,
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


@router.get("/api/tokens")
async def list_tokens(
    symbol: Optional[str] = Query(default=None, description="Only tokens with this symbol"),
    limit: int = Query(default=200, ge=1, le=200),
    runtime: Runtime = Depends(get_runtime),
) -> List[Dict[str, Any]]:
    rows = await runtime.repository.list_tokens(symbol=symbol, limit=limit)
    return [token_to_dict(row) for row in rows]


@router.get("/api/tokens/{address}")
async def get_token(address: str, runtime: Runtime = Depends(get_runtime)) -> Dict[str, Any]:
    row = await runtime.repository.get_token(checksum_address(address))
    if row is None:
        raise HTTPException(status_code=404, detail="Token not known")
    return token_to_dict(row)
