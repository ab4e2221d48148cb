"""Create app, version and package tables with the simple_app and detail_version views

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "app",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("alias", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("platform", sa.String(length=16), nullable=False),
        sa.Column("bundle_id", sa.String(length=255), nullable=False),
        sa.UniqueConstraint("alias", name="uq_app_alias"),
        sa.UniqueConstraint("bundle_id", "platform", name="uq_app_bundle_platform"),
    )

    op.create_table(
        "version",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("version", sa.String(length=255), nullable=False),
        sa.Column("app_id", sa.Integer(), nullable=False),
        sa.Column("android_version_code", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("android_version_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("ios_short_version", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("ios_bundle_version", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("sort_key", sa.BigInteger(), nullable=False),
        sa.Column("remark", sa.Text(), nullable=False, server_default=""),
        sa.ForeignKeyConstraint(["app_id"], ["app.id"]),
        sa.UniqueConstraint("version", "app_id", name="uq_version_app"),
    )
    op.create_index("ix_version_app_id", "version", ["app_id"])
    op.create_index("ix_version_sort_key", "version", ["sort_key"])

    op.create_table(
        "package",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("size", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("remark", sa.Text(), nullable=False, server_default=""),
        sa.ForeignKeyConstraint(["version_id"], ["version.id"]),
    )
    op.create_index("ix_package_version_id", "package", ["version_id"])
    op.create_index("ix_package_created_at", "package", ["created_at"])

    op.execute("CREATE VIEW simple_app AS SELECT id, alias, name FROM app")
    op.execute(
        """
        CREATE VIEW detail_version AS
        SELECT
            v.id,
            v.version,
            v.app_id,
            v.android_version_code,
            v.android_version_name,
            v.ios_short_version,
            v.ios_bundle_version,
            v.sort_key,
            v.remark,
            a.alias AS app_alias,
            a.name AS app_name,
            a.platform AS platform,
            (SELECT count(*) FROM package p WHERE p.version_id = v.id) AS package_count
        FROM version v
        JOIN app a ON a.id = v.app_id
        """
    )


def downgrade() -> None:
    op.execute("DROP VIEW IF EXISTS detail_version")
    op.execute("DROP VIEW IF EXISTS simple_app")
    op.drop_index("ix_package_created_at", table_name="package")
    op.drop_index("ix_package_version_id", table_name="package")
    op.drop_table("package")
    op.drop_index("ix_version_sort_key", table_name="version")
    op.drop_index("ix_version_app_id", table_name="version")
    op.drop_table("version")
    op.drop_table("app")
