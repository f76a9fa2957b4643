import logging

from fastapi import APIRouter, Request

from casino_core.converter import DataConverter
from casino_core.models.dc_models import (
    AccountModel,
    BalanceModel,
    HistoryEntryModel,
    KycModel,
    PurchaseModel,
    RedeemModel,
)
from casino_core.services.settlement import SettlementCoordinator

account_router = APIRouter()
data_converter = DataConverter()


def get_settlement(request: Request) -> SettlementCoordinator:
    return request.app.state.settlement


@account_router.post("/accounts", response_model=BalanceModel)
async def create_account(account: AccountModel, request: Request):
    """Open a balance with the guest or registered starting grant.
    Opening an existing account returns it unchanged.
    """
    balance = await get_settlement(request).open_account(account.user_id, account.is_guest)
    return data_converter.convert_balance_to_model(balance)


@account_router.get("/accounts/{user_id}", response_model=BalanceModel)
async def get_account(user_id: str, request: Request):
    balance = await get_settlement(request).get_balance(user_id)
    return data_converter.convert_balance_to_model(balance)


@account_router.put("/accounts/{user_id}/kyc", response_model=BalanceModel)
async def update_kyc_status(user_id: str, kyc: KycModel, request: Request):
    balance = await get_settlement(request).set_kyc_status(user_id, kyc.kyc_status)
    return data_converter.convert_balance_to_model(balance)


@account_router.post("/payments/credit", response_model=BalanceModel)
async def credit_purchase(purchase: PurchaseModel, request: Request):
    balance = await get_settlement(request).credit_purchase(purchase.user_id, purchase.payment_id, purchase.package_id)
    logging.info(f"Credited package {purchase.package_id} to {purchase.user_id} for payment {purchase.payment_id}")
    return data_converter.convert_balance_to_model(balance)


@account_router.post("/redemptions", response_model=HistoryEntryModel)
async def redeem(redemption: RedeemModel, request: Request):
    result = await get_settlement(request).redeem(redemption.user_id, redemption.amount, redemption.idempotency_key)
    return data_converter.convert_entry_to_model(result.entry)
