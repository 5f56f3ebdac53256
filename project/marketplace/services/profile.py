# marketplace/services/profile.py

from sqlalchemy.future import select
from fastapi import Request

from marketplace.models.user import User as UserModel, Role
from marketplace.utils.errors import NotFoundError


async def sync_user_service(claims: dict, request: Request) -> UserModel:
    """
    Находит пользователя по sub из токена и обновляет его данные из claims.
    Если пользователя ещё нет, создаёт (первый вход через провайдера).
    """
    db = request.state.db
    log = request.app.state.log

    external_id = claims["sub"]
    role = Role.parse(claims.get("role"))
    fields = {
        "email": claims.get("email"),
        "name": claims.get("name"),
        "phone": claims.get("phone"),
        "role": role,
    }

    result = await db.execute(select(UserModel).where(UserModel.external_id == external_id))
    db_user = result.scalar_one_or_none()

    if db_user is None:
        db_user = UserModel(external_id=external_id, is_seller=role == Role.SELLER, **fields)
        db.add(db_user)
        await db.commit()
        await db.refresh(db_user)
        await log.log_info("auth", "Пользователь создан из токена", {"id": db_user.id, "role": role})
        return db_user

    changed = {k: v for k, v in fields.items() if v is not None and getattr(db_user, k) != v}
    if changed:
        for key, value in changed.items():
            setattr(db_user, key, value)
        if role == Role.SELLER:
            db_user.is_seller = True
        await db.commit()
        await log.log_info("auth", "Данные пользователя обновлены из токена", {"id": db_user.id, "fields": list(changed)})

    return db_user


async def read_user_service(id: int, request: Request) -> UserModel:
    """
    Чтение пользователя по ID.
    """
    db = request.state.db
    log = request.app.state.log

    result = await db.execute(select(UserModel).where(UserModel.id == id))
    db_user = result.scalar_one_or_none()
    if db_user is None:
        await log.log_error("auth", "Пользователь не найден", {"id": id})
        raise NotFoundError("Пользователь не найден")

    return db_user


async def read_users_by_ids(ids, request: Request) -> dict[int, UserModel]:
    """Пользователи по набору ID (для рассылки уведомлений продавцам)."""
    db = request.state.db
    if not ids:
        return {}
    result = await db.execute(select(UserModel).where(UserModel.id.in_(list(ids))))
    return {u.id: u for u in result.scalars().all()}
