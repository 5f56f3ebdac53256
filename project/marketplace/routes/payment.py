# marketplace/routes/payment.py

from urllib.parse import parse_qsl

from fastapi import APIRouter, Request

from marketplace.schemas.payment import PaymentResult, PlatformPaymentDetails
from marketplace.services.payment import build_payment_details, handle_callback_service

router = APIRouter()


# ────────────── Paynow resulturl ──────────────
@router.post(
    "/paynow/callback",
    response_model=PaymentResult,
    summary="Уведомление Paynow о статусе платежа",
    responses={
        200: {"description": "Уведомление принято (в том числе повторное)"},
        400: {"description": "Неверная подпись или некорректные данные"},
        404: {"description": "Заказ не найден"},
    },
)
async def paynow_callback(request: Request):
    """
    Paynow присылает форму application/x-www-form-urlencoded.
    Тело разбирается вручную, чтобы сохранить порядок полей для проверки hash.
    """
    body = (await request.body()).decode("utf-8")
    fields = parse_qsl(body, keep_blank_values=True)
    payload = {k: v for k, v in fields if k.lower() != "hash"}
    signature = next((v for k, v in fields if k.lower() == "hash"), None)

    try:
        return await handle_callback_service(payload, signature, request)
    except Exception as e:
        await request.app.state.log.log_error("paynow", f"Ошибка обработки уведомления: {str(e)}", {"reference": payload.get("reference")})
        raise


# ────────────── Реквизиты ──────────────
@router.get(
    "/details",
    response_model=PlatformPaymentDetails,
    summary="Реквизиты для оплаты EcoCash / банковским переводом",
)
async def payment_details():
    return build_payment_details()
