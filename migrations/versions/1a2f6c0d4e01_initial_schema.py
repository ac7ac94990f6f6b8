"""initial schema

Revision ID: 1a2f6c0d4e01
Revises:
Create Date: 2026-03-02 10:14:27.118402

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "1a2f6c0d4e01"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE = sa.text("deleted_at IS NULL")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    ]


def _active_unique(name, table, *columns):
    op.create_index(
        name,
        table,
        list(columns),
        unique=True,
        postgresql_where=ACTIVE,
        sqlite_where=ACTIVE,
    )


def upgrade():
    # =========================
    # roles
    # =========================
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=50), nullable=False, unique=True),
        sa.Column("description", sa.String(length=255), nullable=True),
    )

    # =========================
    # sections / locations
    # =========================
    op.create_table(
        "sections",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("management_level", sa.Integer(), nullable=True),
        sa.Column("email", sa.String(length=150), nullable=True),
        sa.Column("parent_section_id", sa.Integer(), sa.ForeignKey("sections.id"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_sections_parent_section_id", "sections", ["parent_section_id"])
    _active_unique("uq_sections_name_active", "sections", "name")

    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("section_id", sa.Integer(), sa.ForeignKey("sections.id"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_locations_section_id", "locations", ["section_id"])
    _active_unique("uq_locations_section_name_active", "locations", "section_id", "name")

    # =========================
    # companies
    # =========================
    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tax_id", sa.String(length=50), nullable=False),
        sa.Column("legal_name", sa.String(length=255), nullable=False),
        sa.Column("trade_name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=150), nullable=True),
        sa.Column("phone_number", sa.String(length=50), nullable=True),
        *_timestamps(),
    )
    _active_unique("uq_companies_tax_id_active", "companies", "tax_id")

    # =========================
    # users
    # =========================
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=150), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("national_id", sa.String(length=30), nullable=True),
        sa.Column("birth_date", sa.Date(), nullable=True),
        sa.Column("avatar_url", sa.String(length=500), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("section_id", sa.Integer(), sa.ForeignKey("sections.id"), nullable=True),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_section_id", "users", ["section_id"])
    _active_unique("uq_users_email_active", "users", "email")
    _active_unique("uq_users_national_id_active", "users", "national_id")

    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    )

    # =========================
    # assets
    # =========================
    op.create_table(
        "assets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("inventory_code", sa.String(length=200), nullable=False),
        sa.Column("serial_number", sa.String(length=100), nullable=True),
        sa.Column("product_name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=12), nullable=False, server_default="in_storage"),
        sa.Column("current_section_id", sa.Integer(), sa.ForeignKey("sections.id"), nullable=True),
        sa.Column("current_location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=True),
        sa.Column("supplier_company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=True),
        sa.Column("purchase_date", sa.Date(), nullable=True),
        sa.Column("invoice_number", sa.String(length=50), nullable=True),
        sa.Column("warranty_expiry_date", sa.Date(), nullable=True),
        sa.Column("acquisition_procedure", sa.String(length=200), nullable=True),
        sa.Column("image_url", sa.String(length=500), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_assets_current_section_id", "assets", ["current_section_id"])
    op.create_index("ix_assets_current_location_id", "assets", ["current_location_id"])
    op.create_index("ix_assets_supplier_company_id", "assets", ["supplier_company_id"])
    op.create_index("ix_assets_status", "assets", ["status"])
    _active_unique("uq_assets_inventory_code_active", "assets", "inventory_code")
    _active_unique("uq_assets_serial_number_active", "assets", "serial_number")

    # =========================
    # asset_transfers
    # immutable except the receipt fields
    # =========================
    op.create_table(
        "asset_transfers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id"), nullable=False),
        sa.Column("transfer_date", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("movement_type", sa.String(length=8), nullable=False, server_default="internal"),
        sa.Column("from_section_id", sa.Integer(), sa.ForeignKey("sections.id"), nullable=True),
        sa.Column("to_section_id", sa.Integer(), sa.ForeignKey("sections.id"), nullable=True),
        sa.Column("from_location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=True),
        sa.Column("to_location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=True),
        sa.Column("from_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("to_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("authorized_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("received_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("received_date", sa.DateTime(), nullable=True),
        sa.Column("transfer_reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("signature_image_url", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_asset_transfers_asset_id", "asset_transfers", ["asset_id"])
    op.create_index("ix_asset_transfers_asset_date", "asset_transfers", ["asset_id", "transfer_date"])

    # =========================
    # software_licenses
    # =========================
    op.create_table(
        "software_licenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("software_name", sa.String(length=255), nullable=False),
        sa.Column("software_version", sa.String(length=100), nullable=True),
        sa.Column("license_key", sa.String(length=500), nullable=True),
        sa.Column("license_type", sa.String(length=19), nullable=False, server_default="other"),
        sa.Column("seats", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("purchase_date", sa.Date(), nullable=True),
        sa.Column("purchase_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("supplier_company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=True),
        sa.Column("invoice_number", sa.String(length=50), nullable=True),
        sa.Column("assigned_to_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("seats >= 1", name="ck_software_licenses_seats"),
        sa.CheckConstraint("purchase_cost IS NULL OR purchase_cost >= 0", name="ck_software_licenses_cost"),
    )
    op.create_index("ix_software_licenses_supplier_company_id", "software_licenses", ["supplier_company_id"])
    op.create_index("ix_software_licenses_assigned_to_user_id", "software_licenses", ["assigned_to_user_id"])
    _active_unique("uq_software_licenses_key_active", "software_licenses", "license_key")

    op.create_table(
        "asset_software_license_assignments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "software_license_id",
            sa.Integer(),
            sa.ForeignKey("software_licenses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("installation_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("asset_id", "software_license_id", name="uq_asset_license_assignment"),
    )
    op.create_index("ix_asset_software_license_assignments_asset_id", "asset_software_license_assignments", ["asset_id"])
    op.create_index(
        "ix_asset_software_license_assignments_software_license_id",
        "asset_software_license_assignments",
        ["software_license_id"],
    )

    # =========================
    # documents
    # =========================
    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("subject_type", sa.String(length=16), nullable=False),
        sa.Column("subject_id", sa.Integer(), nullable=False),
        sa.Column("document_category", sa.String(length=50), nullable=False, server_default="invoice_purchase"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("original_filename", sa.String(length=255), nullable=False),
        sa.Column("storage_key", sa.String(length=500), nullable=False),
        sa.Column("mime_type", sa.String(length=100), nullable=False),
        sa.Column("file_size_bytes", sa.Integer(), nullable=False),
        sa.Column("file_sha256", sa.String(length=64), nullable=False),
        sa.Column("uploaded_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_documents_subject", "documents", ["subject_type", "subject_id"])


def downgrade():
    op.drop_index("ix_documents_subject", table_name="documents")
    op.drop_table("documents")
    op.drop_table("asset_software_license_assignments")
    op.drop_table("software_licenses")
    op.drop_table("asset_transfers")
    op.drop_table("assets")
    op.drop_table("user_roles")
    op.drop_table("users")
    op.drop_table("companies")
    op.drop_table("locations")
    op.drop_table("sections")
    op.drop_table("roles")
