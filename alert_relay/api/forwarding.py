"""CRUD API for broker-relay forwarding configs."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from alert_relay.api.deps import get_current_user
from alert_relay.database import get_session
from alert_relay.forwarding.broker_relay import ensure_utc
from alert_relay.models.forwarding_config import ForwardingConfig
from alert_relay.schemas.forwarding_config import (
    ForwardingConfigCreate,
    ForwardingConfigRead,
    ForwardingConfigUpdate,
)
from alert_relay.services.encryption import encrypt
from alert_relay.utils.sessions import next_session_start

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/forwarding-configs", tags=["forwarding"], dependencies=[Depends(get_current_user)])


def _to_read(config: ForwardingConfig) -> ForwardingConfigRead:
    return ForwardingConfigRead(
        id=config.id,
        name=config.name,
        enabled=config.enabled,
        webhook_urls=config.webhook_urls or [],
        allowed_strategies=config.allowed_strategies or {},
        symbol_map=config.symbol_map or {},
        risk_percentage=config.risk_percentage,
        rounding_mode=config.rounding_mode,
        paused_until=ensure_utc(config.paused_until) if config.paused_until else None,
        account_id=config.account_id,
        has_token=bool(config.token_encrypted),
        created_at=config.created_at,
        updated_at=config.updated_at,
    )


def _get_or_404(session: Session, config_id: int) -> ForwardingConfig:
    config = session.get(ForwardingConfig, config_id)
    if not config:
        raise HTTPException(status_code=404, detail="Forwarding config not found")
    return config


@router.get("", response_model=list[ForwardingConfigRead])
def list_configs(session: Session = Depends(get_session)):
    configs = session.exec(select(ForwardingConfig).order_by(ForwardingConfig.id)).all()
    return [_to_read(c) for c in configs]


@router.post("", response_model=ForwardingConfigRead, status_code=201)
def create_config(data: ForwardingConfigCreate, session: Session = Depends(get_session)):
    config = ForwardingConfig(
        name=data.name,
        enabled=data.enabled,
        webhook_urls=data.webhook_urls,
        allowed_strategies=data.allowed_strategies,
        symbol_map=data.symbol_map,
        risk_percentage=data.risk_percentage,
        rounding_mode=data.rounding_mode,
        token_encrypted=encrypt(data.token) if data.token else "",
        account_id=data.account_id,
    )
    session.add(config)
    session.commit()
    session.refresh(config)
    logger.info(
        f"PickMyTrade [{config.name}]: config created",
        extra={"category": "broker", "details": {"configId": config.id, "configName": config.name}},
    )
    return _to_read(config)


@router.get("/{config_id}", response_model=ForwardingConfigRead)
def get_config(config_id: int, session: Session = Depends(get_session)):
    return _to_read(_get_or_404(session, config_id))


@router.put("/{config_id}", response_model=ForwardingConfigRead)
def update_config(config_id: int, data: ForwardingConfigUpdate, session: Session = Depends(get_session)):
    config = _get_or_404(session, config_id)

    update_data = data.model_dump(exclude_unset=True)
    if "token" in update_data:
        token = update_data.pop("token")
        if token is not None:
            config.token_encrypted = encrypt(token) if token else ""

    for key, value in update_data.items():
        if value is not None:
            setattr(config, key, value)
    config.updated_at = datetime.now(timezone.utc)

    session.add(config)
    session.commit()
    session.refresh(config)
    return _to_read(config)


@router.delete("/{config_id}", status_code=204)
def delete_config(config_id: int, session: Session = Depends(get_session)):
    config = _get_or_404(session, config_id)
    name = config.name
    session.delete(config)
    session.commit()
    logger.info(
        f"PickMyTrade [{name}]: config deleted",
        extra={"category": "broker", "details": {"configId": config_id}},
    )


@router.post("/{config_id}/pause")
def toggle_pause(config_id: int, session: Session = Depends(get_session)):
    """Pause until the next session start, or resume if currently paused."""
    config = _get_or_404(session, config_id)
    now = datetime.now(timezone.utc)
    paused = config.paused_until is not None and ensure_utc(config.paused_until) > now

    if paused:
        config.paused_until = None
        logger.info(
            f"PickMyTrade [{config.name}]: resumed forwarding",
            extra={"category": "broker", "details": {"configId": config_id}},
        )
    else:
        config.paused_until = next_session_start(now)
        logger.info(
            f"PickMyTrade [{config.name}]: paused until {config.paused_until.isoformat()}",
            extra={"category": "broker", "details": {"configId": config_id, "pausedUntil": config.paused_until.isoformat()}},
        )
    config.updated_at = now

    session.add(config)
    session.commit()
    session.refresh(config)
    result = _to_read(config)
    return {
        "success": True,
        "isPaused": not paused,
        "pausedUntil": result.paused_until,
        "config": result,
    }
