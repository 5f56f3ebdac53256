# marketplace/main.py

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn
from dotenv import load_dotenv
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError

# --- загрузка переменных окружения (до импорта настроек) ---
load_dotenv()

from marketplace.config import settings
from marketplace.utils.log import Log
from marketplace.utils.database import init_db, dispose_db
from marketplace.middleware.db_middleware import DBSessionMiddleware
from marketplace.services.notification import NotificationDispatcher, LogEmailChannel, LogSmsChannel
from marketplace.services.paynow import PaynowGateway

import os
import multiprocessing

# --- sync логгер для раннего старта ---
boot_log = Log()
if os.environ.get("RUN_MAIN") == "true" or multiprocessing.current_process().name == "MainProcess":
    boot_log.log_info_sync(target="startup", message="Импорты main.py выполнены")

# ────────────── Lifespan ──────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    boot_log.log_info_sync(target="startup", message="lifespan: startup начат")

    # Инициализация БД
    await init_db()
    boot_log.log_info_sync(target="startup", message="База инициализирована")

    app.state.log = Log()
    await app.state.log.log_info(target="startup", message="Async Log инициализирован")

    # Уведомления: по умолчанию каналы пишут в лог
    app.state.notifier = NotificationDispatcher(
        [LogEmailChannel(app.state.log), LogSmsChannel(app.state.log)],
        app.state.log,
        timeout=settings.NOTIFY_TIMEOUT,
    )

    app.state.paynow = PaynowGateway.from_settings()
    if app.state.paynow.configured:
        await app.state.log.log_info(target="startup", message="Paynow подключён")
    else:
        await app.state.log.log_warning(target="startup", message="Paynow не настроен: режим разработки, оплата подтверждается автоматически")

    yield

    # shutdown
    await app.state.log.log_info(target="shutdown", message="Остановка приложения")
    await app.state.log.shutdown()
    await dispose_db()
    boot_log.log_info_sync(target="shutdown", message="Log корректно завершён")

# ────────────── Создаём FastAPI приложение ──────────────
app = FastAPI(title="Marketplace Orders & Payments API", lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# DB middleware для request.state.db
app.add_middleware(DBSessionMiddleware)


# ────────────── Ошибки БД ──────────────
@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError):
    await request.app.state.log.log_error("db", f"Необработанная ошибка БД: {exc!r}", {"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Внутренняя ошибка сервера"},
    )


@app.get("/")
def read_root():
    return {"message": "Marketplace API"}

# ────────────── Подключение роутов ──────────────
from marketplace.routes import auth, product, order, payment, admin, seller

app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(product.router, prefix="/product", tags=["product"])
app.include_router(order.router, prefix="/order", tags=["order"])
app.include_router(payment.router, prefix="/payment", tags=["payment"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])
app.include_router(seller.router, prefix="/seller", tags=["seller"])

# ────────────── Запуск uvicorn ──────────────
if __name__ == "__main__":
    boot_log.log_info_sync(target="startup", message="Запуск uvicorn.run")
    uvicorn.run(
        "marketplace.main:app",
        host="127.0.0.1",
        port=8000,
        log_level="info",
        reload=True
    )
