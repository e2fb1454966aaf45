"""API endpoints for reading and updating the forecasting and anomaly YAML files."""

from __future__ import annotations

import os
import shutil
import tempfile
from typing import Any, Dict, Optional

import yaml
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ...core.config import MIN_SEASONAL_POINTS, SETTINGS_FILE, THRESHOLDS_FILE, get_settings

router = APIRouter()

CONFIG_DIR = get_settings().config_dir


def _config_path(filename: str) -> str:
    return os.path.join(CONFIG_DIR, filename)


def _load_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def _safe_write_yaml(path: str, payload: Dict[str, Any]) -> None:
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", suffix=".yaml", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            yaml.safe_dump(payload, handle, sort_keys=False)
        shutil.move(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


class SettingsUpdate(BaseModel):
    forecast_horizon_hours: Optional[int] = Field(None, ge=1, le=24 * 90)
    history_window_days: Optional[int] = Field(None, ge=7, le=365)
    min_history_points: Optional[int] = Field(None, ge=MIN_SEASONAL_POINTS)
    interval_z: Optional[float] = Field(None, gt=0.0, le=4.0)
    baseline_default_value: Optional[float] = Field(None, ge=0.0)
    baseline_p10_multiplier: Optional[float] = Field(None, ge=0.0, le=1.0)
    baseline_p90_multiplier: Optional[float] = Field(None, ge=1.0)
    baseline_accuracy: Optional[float] = Field(None, ge=0.0, le=100.0)
    backtest_holdout_days: Optional[int] = Field(None, ge=1, le=90)
    fallback_accuracy: Optional[float] = Field(None, ge=0.0, le=100.0)
    default_lead_time_days: Optional[int] = Field(None, ge=0, le=365)
    safety_stock_rate: Optional[float] = Field(None, ge=0.0, le=1.0)
    aggressive_multiplier: Optional[float] = Field(None, ge=1.0)
    persist_non_positive_reorders: Optional[bool] = None


class ThresholdsUpdate(BaseModel):
    anomaly_window_days: Optional[int] = Field(None, ge=7, le=365)
    min_daily_points: Optional[int] = Field(None, ge=MIN_SEASONAL_POINTS)
    spike_recent_days: Optional[int] = Field(None, ge=1)
    spike_sigma: Optional[float] = Field(None, ge=0.0)
    spike_mean_multiple: Optional[float] = Field(None, ge=1.0)
    spike_high_multiple: Optional[float] = Field(None, ge=1.0)
    drop_ratio: Optional[float] = Field(None, ge=0.0, le=1.0)
    drop_high_ratio: Optional[float] = Field(None, ge=0.0, le=1.0)
    drop_min_mean: Optional[float] = Field(None, ge=0.0)
    weekend_high_ratio: Optional[float] = Field(None, ge=1.0)
    weekend_low_ratio: Optional[float] = Field(None, ge=0.0, le=1.0)
    min_weekday_observations: Optional[int] = Field(None, ge=1)
    min_weekend_observations: Optional[int] = Field(None, ge=1)
    stale_days: Optional[int] = Field(None, ge=1)
    stale_medium_days: Optional[int] = Field(None, ge=1)
    reserved_ratio: Optional[float] = Field(None, ge=0.0, le=1.0)


def _merge_updates(original: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    result = original.copy()
    result.update({k: v for k, v in updates.items() if v is not None})
    return result


def _read_config(filename: str) -> Dict[str, Any]:
    try:
        return _load_yaml(_config_path(filename))
    except FileNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "message": f"{filename} not found"},
        ) from exc


def _update_config(filename: str, updates: Dict[str, Any]) -> Dict[str, Any]:
    path = _config_path(filename)
    try:
        current = _load_yaml(path)
    except FileNotFoundError:
        current = {}

    updated = _merge_updates(current, updates)
    if updated == current:
        return current

    try:
        _safe_write_yaml(path, updated)
    except OSError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "write_failed", "message": str(exc)},
        ) from exc
    return updated


@router.get("/configs/settings")
def get_settings_config() -> Dict[str, Any]:
    return _read_config(SETTINGS_FILE)


@router.put("/configs/settings")
def put_settings(body: SettingsUpdate) -> Dict[str, Any]:
    return _update_config(SETTINGS_FILE, body.model_dump(exclude_none=True))


@router.get("/configs/thresholds")
def get_thresholds() -> Dict[str, Any]:
    return _read_config(THRESHOLDS_FILE)


@router.put("/configs/thresholds")
def put_thresholds(body: ThresholdsUpdate) -> Dict[str, Any]:
    return _update_config(THRESHOLDS_FILE, body.model_dump(exclude_none=True))
