from __future__ import annotations

import json

from sqlalchemy import select

from actions.helpers import append_audit, field_error
from models import SystemSetting
from utils import AuthContext, iso_utc_now

MAX_SETTING_KEY_LENGTH = 100


def _decode(raw: str):
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def settings_get(data, auth: AuthContext | None, db, cfg):
    rows = db.execute(select(SystemSetting).order_by(SystemSetting.settingKey.asc())).scalars().all()
    return {"settings": {r.settingKey: _decode(r.valueJson) for r in rows}}


def settings_update(data, auth: AuthContext | None, db, cfg):
    settings = (data or {}).get("settings")
    if not isinstance(settings, dict) or not settings:
        raise field_error("settings", "Settings object is required")

    now = iso_utc_now()
    for key, value in settings.items():
        k = str(key or "").strip()
        if not k or len(k) > MAX_SETTING_KEY_LENGTH:
            raise field_error("settings", f"Invalid setting key: {key!r}")
        row = db.get(SystemSetting, k)
        if row is None:
            row = SystemSetting(settingKey=k)
            db.add(row)
        row.valueJson = json.dumps(value, default=str)
        row.updatedAt = now
        row.updatedBy = auth.userId

    append_audit(db, entityType="SETTINGS", entityId="system", action="SETTINGS_UPDATE", actor=auth, at=now, meta={"keys": sorted(settings)})
    return settings_get(data, auth, db, cfg)
