import uuid

from sqlalchemy import String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base


class Client(Base):
    """Event client. Managed by the CRM side of the product; read-only here."""

    __tablename__ = "clients"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    partner_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    @property
    def playlist_name(self) -> str:
        if self.partner_name:
            return f"{self.name} & {self.partner_name}"
        return self.name
