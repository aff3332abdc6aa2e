"""
Per-viewer view tracking for listings.
One row per listing and viewer, so first views and repeat counts are decided
by the database rather than by a read-modify-write of the listing row.
"""

from sqlalchemy import String, Integer, Boolean, Uuid, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from app.database import Base
import uuid


class PropertyViewer(Base):
    """A signed-in user (by id) or an anonymous visitor (by session id) who viewed a listing."""

    __tablename__ = "property_viewers"

    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    viewer_key: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="User id, or session id when anonymous"
    )

    anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    view_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Views from this viewer, used to flag excessive repeats"
    )

    __table_args__ = (
        UniqueConstraint("listing_id", "viewer_key", name="uq_property_viewers_listing_viewer"),
    )

    def __repr__(self) -> str:
        return f"<PropertyViewer(listing_id={self.listing_id}, viewer_key={self.viewer_key}, views={self.view_count})>"
