from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from ..core.config import settings
from ..core.database import storage_guard
from ..core.exceptions import NotFound, ValidationError
from ..models.provider import Provider, ProviderCategory
from ..schemas.provider import ProviderCreate

logger = logging.getLogger(__name__)

class ProviderRegistry:
    def __init__(self, db: Session):
        self.db = db

    def create_provider(self, provider_data: ProviderCreate) -> Provider:
        """Register a new bookable provider."""
        minutes = provider_data.appointment_minutes or settings.DEFAULT_APPOINTMENT_MINUTES
        if not settings.MIN_APPOINTMENT_MINUTES <= minutes <= settings.MAX_APPOINTMENT_MINUTES:
            raise ValidationError(
                f"Appointment length must be between {settings.MIN_APPOINTMENT_MINUTES} "
                f"and {settings.MAX_APPOINTMENT_MINUTES} minutes",
                appointment_minutes=minutes,
            )

        new_provider = Provider(
            name=provider_data.name,
            category=provider_data.category,
            appointment_minutes=minutes,
            is_active=True,
        )

        with storage_guard(self.db):
            self.db.add(new_provider)
            self.db.commit()
            self.db.refresh(new_provider)

        logger.info(f"Provider {new_provider.id} registered ({new_provider.category.value})")
        return new_provider

    def get_provider(self, provider_id: int) -> Provider:
        with storage_guard(self.db):
            provider = self.db.get(Provider, provider_id)
        if not provider:
            raise NotFound(f"Provider {provider_id} not found", provider_id=provider_id)
        return provider

    def list_providers(self, category: Optional[ProviderCategory] = None) -> List[Provider]:
        with storage_guard(self.db):
            query = self.db.query(Provider)
            if category is not None:
                query = query.filter(Provider.category == category)
            return query.order_by(Provider.name, Provider.id).all()

    def set_active(self, provider_id: int, is_active: bool) -> Provider:
        provider = self.get_provider(provider_id)
        with storage_guard(self.db):
            provider.is_active = is_active
            self.db.commit()
            self.db.refresh(provider)
        return provider
