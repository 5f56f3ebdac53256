# marketplace/utils/database.py

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from marketplace.config import settings

# ────────────── Base для моделей ──────────────
Base = declarative_base()  # базовый класс для всех моделей SQLAlchemy

# ────────────── URL базы данных ──────────────
SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL

# ────────────── Асинхронный движок ──────────────
engine = create_async_engine(
    SQLALCHEMY_DATABASE_URL,
    echo=False  # True можно включить для отладки SQL
)

# ────────────── Асинхронная сессия ──────────────
# expire_on_commit=False: после commit объекты читаются без повторного запроса
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# ────────────── Инициализация базы данных ──────────────
async def init_db():
    """
    Создаёт все таблицы в базе данных (если ещё не созданы).
    Миграции схемы выполняются отдельно, здесь только create_all.
    """
    # Модели должны быть импортированы до create_all
    from marketplace.models import user, product, order, commission, verification  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_db():
    """Закрывает все соединения пула при остановке приложения."""
    await engine.dispose()


def utcnow() -> datetime:
    """Текущее время в UTC (значение по умолчанию для колонок времени)."""
    return datetime.now(timezone.utc)
