from datetime import timezone

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

# Read-only projections backed by database views. Kept on their own base so
# Base.metadata.create_all never tries to create them as tables.
ViewBase = declarative_base()

APP_ALIAS_CONSTRAINT = "uq_app_alias"


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend. SQLite stores them naive."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class App(Base):
    """A logical application, identified by (bundle_id, platform)."""

    __tablename__ = "app"
    __table_args__ = (
        UniqueConstraint("alias", name=APP_ALIAS_CONSTRAINT),
        UniqueConstraint("bundle_id", "platform", name="uq_app_bundle_platform"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    alias = Column(String(32), nullable=False)
    name = Column(String(255), nullable=False)
    platform = Column(String(16), nullable=False)
    bundle_id = Column(String(255), nullable=False)

    versions = relationship("Version", back_populates="app")


class Version(Base):
    """One release of an app; groups the packages uploaded for it."""

    __tablename__ = "version"
    __table_args__ = (
        UniqueConstraint("version", "app_id", name="uq_version_app"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    version = Column(String(255), nullable=False)
    app_id = Column(Integer, ForeignKey("app.id"), nullable=False, index=True)
    android_version_code = Column(BigInteger, nullable=False, default=0)
    android_version_name = Column(String(255), nullable=False, default="")
    ios_short_version = Column(String(255), nullable=False, default="")
    ios_bundle_version = Column(String(255), nullable=False, default="")
    sort_key = Column(BigInteger, nullable=False, index=True)
    remark = Column(Text, nullable=False, default="")

    app = relationship("App", back_populates="versions")
    packages = relationship("Package", back_populates="version")


class Package(Base):
    """An uploaded build file. The id is chosen by the uploader."""

    __tablename__ = "package"

    id = Column(String(64), primary_key=True)
    version_id = Column(Integer, ForeignKey("version.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    size = Column(BigInteger, nullable=False)
    created_at = Column(UTCDateTime(timezone=True), nullable=False, index=True)
    remark = Column(Text, nullable=False, default="")

    version = relationship("Version", back_populates="packages")


class SimpleApp(ViewBase):
    __tablename__ = "simple_app"

    id = Column(Integer, primary_key=True)
    alias = Column(String(32))
    name = Column(String(255))


class DetailVersion(ViewBase):
    """Version row joined with its app and package count."""

    __tablename__ = "detail_version"

    id = Column(Integer, primary_key=True)
    version = Column(String(255))
    app_id = Column(Integer)
    android_version_code = Column(BigInteger)
    android_version_name = Column(String(255))
    ios_short_version = Column(String(255))
    ios_bundle_version = Column(String(255))
    sort_key = Column(BigInteger)
    remark = Column(Text)
    app_alias = Column(String(32))
    app_name = Column(String(255))
    platform = Column(String(16))
    package_count = Column(Integer)
