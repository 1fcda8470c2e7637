from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from ..runtime import Runtime
from .deps import get_runtime


router = APIRouter(prefix="/api/trade")


class QuoteRequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    side: Literal["buy", "sell"]
    token: str = Field(description="Token symbol or 0x address")
    amount: str = Field(description="Human amount: stable units for buys, token units for sells")
    slippage_bps: Optional[int] = Field(default=None, alias="slippageBps", ge=0)
    user_id: Optional[str] = Field(default=None, alias="userId", description="Adds a fee estimate for this wallet")


class SwapRequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    side: Literal["buy", "sell"]
    user_id: str = Field(alias="userId")
    token: str
    amount: str
    slippage_bps: Optional[int] = Field(default=None, alias="slippageBps", ge=0)
    gas_boost_bps: Optional[int] = Field(default=None, alias="gasBoostBps", ge=0)


class WithdrawRequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    token: str = Field(default="ETH", description="ETH, a symbol or a 0x address")
    amount: str
    destination: str


@router.post("/quote")
async def post_quote(body: QuoteRequestBody, runtime: Runtime = Depends(get_runtime)) -> Dict[str, Any]:
    preview = await runtime.orchestrator.quote(
        body.side, body.token, body.amount, body.slippage_bps, user_id=body.user_id
    )
    return preview.to_dict()


@router.post("/swap")
async def post_swap(body: SwapRequestBody, runtime: Runtime = Depends(get_runtime)) -> Dict[str, Any]:
    result = await runtime.orchestrator.execute(
        body.side,
        body.user_id,
        body.token,
        body.amount,
        slippage_bps=body.slippage_bps,
        gas_boost_bps=body.gas_boost_bps,
    )
    return result.to_dict()


@router.post("/withdraw")
async def post_withdraw(body: WithdrawRequestBody, runtime: Runtime = Depends(get_runtime)) -> Dict[str, Any]:
    result = await runtime.orchestrator.withdraw(body.user_id, body.amount, body.token, body.destination)
    return result.to_dict()
