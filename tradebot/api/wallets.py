from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.rpc.erc20 import checksum_address
from ..core.trading.amounts import format_units
from ..runtime import Runtime
from .deps import get_runtime


router = APIRouter()


@router.get("/api/wallets/{user_id}")
async def get_wallet(
    user_id: str,
    token: Optional[str] = Query(default=None, description="Also report this token's balance"),
    runtime: Runtime = Depends(get_runtime),
) -> Dict[str, Any]:
    wallet = await runtime.wallets.get_wallet(user_id)
    if wallet is None:
        raise HTTPException(status_code=404, detail="No wallet for this user")

    balances = await runtime.wallets.refresh_balances(user_id, token)
    trades = await runtime.repository.list_trades(user_id, limit=10)
    return {
        "userId": user_id,
        **balances.to_dict(),
        "recentTrades": [
            {
                "side": t.side,
                "token": t.token_address,
                "symbol": t.token_symbol,
                "amount": t.amount,
                "txHash": t.tx_hash,
                "status": t.status,
                "createdAt": t.created_at.isoformat() if t.created_at else None,
            }
            for t in trades
        ],
    }


@router.get("/api/blockchain/token/{token}/balance/{wallet}")
async def get_token_balance(token: str, wallet: str, runtime: Runtime = Depends(get_runtime)) -> Dict[str, Any]:
    owner = checksum_address(wallet)
    address = await runtime.tokens.resolve_address(token)
    info = await runtime.tokens.info(address)
    raw = await runtime.erc20.balance_of(address, owner)
    return {
        "token": address,
        "symbol": info.symbol,
        "wallet": owner,
        "balance": format_units(raw, info.decimals),
        "raw": str(raw),
    }
