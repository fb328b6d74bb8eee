"""
Account Settings Store

Database implementation of the configuration collaborator over the
``api_settings`` table.
"""

from typing import List, Optional

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from unified_dashboard.config.accounts import (
    AccountSettings,
    AccountSettingsStore,
    FeeSettings,
    MarketerType,
    SourceCredentials,
)
from unified_dashboard.database.connection import session_scope
from unified_dashboard.database.models import ApiSettings
from unified_dashboard.models import Identity, SourceName

logger = structlog.get_logger(__name__)

# Column holding the token each source may upgrade
_TOKEN_COLUMNS = {
    SourceName.ORDERS.value: "shopify_access_token",
    SourceName.ADS.value: "facebook_access_token",
}


def _to_account_settings(row: ApiSettings) -> AccountSettings:
    defaults = FeeSettings()
    fees = FeeSettings(
        gateway_fee_enabled=(
            row.payment_gateway_enabled
            if row.payment_gateway_enabled is not None
            else defaults.gateway_fee_enabled
        ),
        gateway_fee_percent=(
            row.payment_gateway_fee
            if row.payment_gateway_fee is not None
            else defaults.gateway_fee_percent
        ),
        marketer_enabled=bool(row.marketer_enabled),
        marketer_type=MarketerType(row.marketer_type or defaults.marketer_type.value),
        marketer_value=row.marketer_value or 0.0,
        cod_remittance_fee=(
            row.cod_remittance_fee
            if row.cod_remittance_fee is not None
            else defaults.cod_remittance_fee
        ),
        cod_fee_on_delivery_only=bool(row.cod_fee_on_delivery_only),
    )
    credentials = SourceCredentials(
        shopify_store_url=row.shopify_store_url,
        shopify_access_token=row.shopify_access_token,
        shiprocket_email=row.shiprocket_email,
        shiprocket_password=row.shiprocket_password,
        facebook_access_token=row.facebook_access_token,
        facebook_ad_account_id=row.facebook_ad_account_id,
        facebook_app_id=row.facebook_app_id,
        facebook_app_secret=row.facebook_app_secret,
    )
    return AccountSettings(fees=fees, credentials=credentials)


class DatabaseSettingsStore(AccountSettingsStore):
    """
    Account settings backed by SQLAlchemy.

    Example:
        store = DatabaseSettingsStore(get_session_factory())
        settings = await store.get_settings(identity)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    def _row_query(self, identity: Identity):
        query = select(ApiSettings).where(ApiSettings.user_id == identity.user_id)
        if identity.company_id:
            query = query.where(ApiSettings.company_id == identity.company_id)
        if identity.vendor_id:
            query = query.where(ApiSettings.vendor_id == identity.vendor_id)
        return query.order_by(ApiSettings.created_at).limit(1)

    async def _get_row(self, db: AsyncSession, identity: Identity) -> Optional[ApiSettings]:
        result = await db.execute(self._row_query(identity))
        return result.scalars().first()

    async def get_settings(self, identity: Identity) -> AccountSettings:
        async with session_scope(self._session_factory) as db:
            row = await self._get_row(db, identity)
            if row is None:
                logger.debug("No stored settings, using defaults", identity=identity.key)
                return AccountSettings()
            return _to_account_settings(row)

    async def save_source_token(self, identity: Identity, source: str, token: str) -> None:
        column = _TOKEN_COLUMNS.get(source)
        if column is None:
            raise ValueError(f"Source {source!r} has no stored token")

        async with session_scope(self._session_factory) as db:
            row = await self._get_row(db, identity)
            if row is None:
                logger.warning("Cannot persist token without a settings row", identity=identity.key, source=source)
                return
            setattr(row, column, token)

        logger.info("Persisted upgraded source token", identity=identity.key, source=source)

    async def list_identities(self, limit: int) -> List[Identity]:
        query = (
            select(ApiSettings)
            .where(
                or_(
                    ApiSettings.shopify_access_token.is_not(None),
                    ApiSettings.shiprocket_email.is_not(None),
                    ApiSettings.facebook_access_token.is_not(None),
                )
            )
            .order_by(ApiSettings.created_at)
            .limit(limit)
        )
        async with session_scope(self._session_factory) as db:
            result = await db.execute(query)
            rows = result.scalars().all()

        return [
            Identity(
                user_id=row.user_id,
                role=row.role or "user",
                company_id=row.company_id,
                vendor_id=row.vendor_id,
            )
            for row in rows
        ]
