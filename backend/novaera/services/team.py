from __future__ import annotations

import logging
from typing import Any

import requests
from sqlalchemy.orm import Session

from novaera.core.settings import settings
from novaera.models.finance import Expense, Operation
from novaera.models.profile import Profile
from novaera.models.team import TeamMember
from novaera.services.money import round_money, to_amount
from novaera.services.orders import is_valid_email


logger = logging.getLogger(__name__)


class TeamError(Exception):
    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _admin_headers() -> dict[str, str]:
    key = settings.supabase_service_role_key
    if not settings.supabase_url or not key:
        raise TeamError("Supabase service role is not configured", status_code=500)
    return {
        "apikey": key,
        "Authorization": f"Bearer {key}",
        "Content-Type": "application/json",
    }


def _admin_users_url(user_id: str | None = None) -> str:
    base = f"{str(settings.supabase_url).rstrip('/')}/auth/v1/admin/users"
    return f"{base}/{user_id}" if user_id else base


def _create_auth_user(email: str, password: str, full_name: str) -> str:
    resp = requests.post(
        _admin_users_url(),
        headers=_admin_headers(),
        json={
            "email": email,
            "password": password,
            "email_confirm": True,
            "user_metadata": {"full_name": full_name},
        },
        timeout=30,
    )
    try:
        data = resp.json() or {}
    except ValueError:
        data = {}
    if resp.status_code >= 400:
        message = str(data.get("msg") or data.get("message") or data.get("error_description") or "")
        logger.warning("team.auth_user.create_failed status=%s message=%s", resp.status_code, message)
        raise TeamError(message or f"Supabase error ({resp.status_code})", status_code=400)
    user_id = str(data.get("id") or (data.get("user") or {}).get("id") or "").strip()
    if not user_id:
        raise TeamError("Supabase did not return a user id", status_code=502)
    return user_id


def _delete_auth_user(user_id: str) -> None:
    try:
        resp = requests.delete(_admin_users_url(user_id), headers=_admin_headers(), timeout=30)
        if resp.status_code >= 400:
            logger.error("team.auth_user.rollback_failed user_id=%s status=%s", user_id, resp.status_code)
    except requests.RequestException:
        logger.exception("team.auth_user.rollback_failed user_id=%s", user_id)


def create_team_operator(
    db: Session,
    *,
    manager_id: str,
    email: str,
    password: str,
    full_name: str,
    nickname: str | None = None,
    team_name: str | None = None,
) -> dict[str, Any]:
    email = (email or "").strip().lower()
    full_name = (full_name or "").strip()
    if not is_valid_email(email):
        raise TeamError("E-mail inválido")
    if len(password or "") < 6:
        raise TeamError("A senha deve ter pelo menos 6 caracteres")
    if not full_name:
        raise TeamError("Nome completo é obrigatório")
    if db.query(Profile).filter(Profile.email == email).first() is not None:
        raise TeamError("Este e-mail já está cadastrado")

    operator_id = _create_auth_user(email, password, full_name)
    try:
        db.add(Profile(id=operator_id, email=email, full_name=full_name))
        member = TeamMember(
            manager_id=manager_id,
            operator_id=operator_id,
            nickname=(nickname or "").strip() or None,
            team_name=(team_name or "").strip() or None,
        )
        db.add(member)
        db.commit()
        db.refresh(member)
    except Exception:
        db.rollback()
        logger.exception("team.member.create_failed operator_id=%s", operator_id)
        _delete_auth_user(operator_id)
        raise TeamError("Falha ao adicionar operador à equipe", status_code=500)

    logger.info("team.operator.created manager_id=%s operator_id=%s", manager_id, operator_id)
    return {
        "success": True,
        "user": {"id": operator_id, "email": email, "full_name": full_name},
        "team_member": {"id": member.id, "nickname": member.nickname, "team_name": member.team_name},
    }


def _operator_stats(db: Session, operator_id: str) -> dict[str, Any]:
    operations = db.query(Operation).filter(Operation.user_id == operator_id).all()
    expenses = db.query(Expense).filter(Expense.user_id == operator_id).all()
    invested = sum(to_amount(op.invested_amount) for op in operations)
    returned = sum(to_amount(op.return_amount) for op in operations)
    spent = sum(to_amount(e.amount) for e in expenses)
    return {
        "total_operations": len(operations),
        "total_invested": round_money(invested),
        "total_return": round_money(returned),
        "total_profit": round_money(returned - invested),
        "total_expenses": round_money(spent),
        "net_profit": round_money(returned - invested - spent),
    }


def list_team_members(db: Session, manager_id: str) -> list[dict[str, Any]]:
    """Operators of one manager, newest first, with their finance totals."""
    members = (
        db.query(TeamMember)
        .filter(TeamMember.manager_id == manager_id)
        .order_by(TeamMember.created_at.desc(), TeamMember.id.desc())
        .all()
    )
    ids = sorted({m.operator_id for m in members if m.operator_id})
    profiles = {p.id: p for p in db.query(Profile).filter(Profile.id.in_(ids)).all()} if ids else {}

    out = []
    for m in members:
        profile = profiles.get(m.operator_id)
        out.append(
            {
                "id": m.id,
                "operator_id": m.operator_id,
                "nickname": m.nickname,
                "team_name": m.team_name,
                "created_at": m.created_at.isoformat() if m.created_at else None,
                "operator_profile": (
                    {"full_name": profile.full_name, "email": profile.email, "avatar_url": profile.avatar_url}
                    if profile is not None
                    else None
                ),
                "stats": _operator_stats(db, m.operator_id),
            }
        )
    return out


def remove_team_member(db: Session, *, manager_id: str, member_id: str) -> None:
    member = (
        db.query(TeamMember)
        .filter(TeamMember.id == member_id, TeamMember.manager_id == manager_id)
        .first()
    )
    if member is None:
        raise TeamError("Membro não encontrado", status_code=404)
    operator_id = member.operator_id
    db.delete(member)
    db.commit()
    logger.info("team.member.removed manager_id=%s operator_id=%s", manager_id, operator_id)
