"""Service for managing dynamic system configuration."""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from backend.models.system_config import SystemConfig
from backend.config import get_settings
from backend.utils.datetime_helpers import parse_hhmm
from backend.utils.exceptions import ValidationError
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

logger = logging.getLogger(__name__)


class SystemConfigService:
    """Service for managing system configuration values."""

    # Define all configurable keys with their metadata
    CONFIG_SCHEMA: Dict[str, Dict[str, Any]] = {
        # Withdrawals
        "withdrawal_window_enabled": {
            "type": "bool",
            "category": "withdrawals",
            "description": "Only accept withdrawal requests inside the daily window",
        },
        "withdrawal_window_start": {
            "type": "time",
            "category": "withdrawals",
            "description": "Daily window opening time (HH:MM, window timezone)",
        },
        "withdrawal_window_end": {
            "type": "time",
            "category": "withdrawals",
            "description": "Daily window closing time (HH:MM, window timezone)",
        },
        "withdrawal_window_timezone": {
            "type": "timezone",
            "category": "withdrawals",
            "description": "IANA timezone the withdrawal window is expressed in",
        },
        "min_withdrawal_amount": {
            "type": "int",
            "category": "withdrawals",
            "description": "Smallest withdrawal accepted in coins",
            "min": 1,
            "max": 100000,
        },

        # Top-ups
        "min_topup_amount": {
            "type": "int",
            "category": "topups",
            "description": "Smallest top-up accepted in coins",
            "min": 1,
            "max": 100000,
        },
        "max_topup_amount": {
            "type": "int",
            "category": "topups",
            "description": "Largest top-up accepted in coins",
            "min": 1,
            "max": 10000000,
        },

        # Risk tagging
        "risk_high_amount_threshold": {
            "type": "int",
            "category": "risk",
            "description": "Withdrawals above this amount are tagged HIGH_AMOUNT",
            "min": 1,
        },
        "risk_very_high_amount_threshold": {
            "type": "int",
            "category": "risk",
            "description": "Withdrawals above this amount get extra risk score",
            "min": 1,
        },
        "risk_suspicious_score": {
            "type": "int",
            "category": "risk",
            "description": "Risk score above which a withdrawal is flagged suspicious",
            "min": 0,
            "max": 100,
        },

        # Rewards
        "daily_reward_base": {
            "type": "int",
            "category": "rewards",
            "description": "Daily reward after the first week of a streak",
            "min": 0,
            "max": 1000,
        },
        "referral_referrer_reward": {
            "type": "int",
            "category": "rewards",
            "description": "Bonus coins for the referrer when a referral completes",
            "min": 0,
            "max": 1000,
        },
        "referral_referred_reward": {
            "type": "int",
            "category": "rewards",
            "description": "Bonus coins for the referred account when its referral completes",
            "min": 0,
            "max": 1000,
        },
    }

    def __init__(self, session: AsyncSession):
        """Initialize the service with a database session."""
        self.session = session

    async def get_config_value(self, key: str) -> Optional[Any]:
        """
        Get a configuration value from the database, falling back to environment settings.

        Args:
            key: Configuration key

        Returns:
            Configuration value, or None if not found
        """
        result = await self.session.execute(
            select(SystemConfig).where(SystemConfig.key == key)
        )
        config_entry = result.scalar_one_or_none()

        if config_entry:
            return self.deserialize_value(config_entry.value, config_entry.value_type)

        # Fall back to environment settings
        settings = get_settings()
        return getattr(settings, key, None)

    async def set_config_value(
        self,
        key: str,
        value: Any,
        updated_by: Optional[str] = None
    ) -> SystemConfig:
        """
        Set a configuration value in the database.

        Raises:
            ValidationError: If key is not in schema or value is invalid
        """
        if key not in self.CONFIG_SCHEMA:
            raise ValidationError(f"Unknown configuration key: {key}")

        schema = self.CONFIG_SCHEMA[key]
        value_type = schema["type"]

        validated_value = self._validate_value(key, value, schema)
        serialized_value = self._serialize_value(validated_value, value_type)

        result = await self.session.execute(
            select(SystemConfig).where(SystemConfig.key == key)
        )
        config_entry = result.scalar_one_or_none()

        if config_entry:
            config_entry.value = serialized_value
            config_entry.value_type = value_type
            config_entry.updated_at = datetime.now(timezone.utc)
            config_entry.updated_by = updated_by
        else:
            config_entry = SystemConfig(
                key=key,
                value=serialized_value,
                value_type=value_type,
                description=schema.get("description"),
                category=schema.get("category"),
                updated_at=datetime.now(timezone.utc),
                updated_by=updated_by
            )
            self.session.add(config_entry)

        await self.session.commit()
        await self.session.refresh(config_entry)

        logger.info(f"Config updated: {key} = {validated_value} by {updated_by or 'system'}")

        return config_entry

    async def get_all_config(self) -> Dict[str, Any]:
        """Get all configuration values, database overrides applied over settings."""
        settings = get_settings()
        config_dict = {key: getattr(settings, key, None) for key in self.CONFIG_SCHEMA}

        result = await self.session.execute(select(SystemConfig))
        for config_entry in result.scalars().all():
            if config_entry.key in self.CONFIG_SCHEMA:
                config_dict[config_entry.key] = self.deserialize_value(
                    config_entry.value,
                    config_entry.value_type
                )

        return config_dict

    @staticmethod
    def _validate_value(key: str, value: Any, schema: Dict[str, Any]) -> Any:
        """Validate and convert a configuration value."""
        value_type = schema["type"]

        if value_type == "int":
            try:
                validated = int(value)
            except (ValueError, TypeError):
                raise ValidationError(f"Invalid integer value for {key}: {value}")

            if "min" in schema and validated < schema["min"]:
                raise ValidationError(f"{key} must be >= {schema['min']}, got {validated}")
            if "max" in schema and validated > schema["max"]:
                raise ValidationError(f"{key} must be <= {schema['max']}, got {validated}")

        elif value_type == "time":
            try:
                parsed = parse_hhmm(str(value))
            except ValueError:
                raise ValidationError(f"Invalid time value for {key}: {value}, expected HH:MM")
            validated = parsed.strftime("%H:%M")

        elif value_type == "timezone":
            try:
                validated = ZoneInfo(str(value).strip()).key
            except (ZoneInfoNotFoundError, ValueError):
                raise ValidationError(f"Unknown timezone for {key}: {value}")

        elif value_type == "bool":
            if isinstance(value, bool):
                validated = value
            elif isinstance(value, str):
                validated = value.lower() in ("true", "1", "yes")
            else:
                validated = bool(value)
        else:
            raise ValidationError(f"Unknown value type: {value_type}")

        return validated

    @staticmethod
    def _serialize_value(value: Any, value_type: str) -> str:
        """Convert a value to string for database storage."""
        if value_type == "bool":
            return "true" if value else "false"
        return str(value)

    @staticmethod
    def deserialize_value(value: str, value_type: str) -> Any:
        """Convert a string value from database to proper Python type."""
        if value_type == "int":
            return int(value)
        elif value_type == "float":
            return float(value)
        elif value_type == "bool":
            return value.lower() in ("true", "1", "yes")
        return value
