"""case workflow schema

Revision ID: 3a9f0c2d7b41
Revises:
Create Date: 2026-10-18 10:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3a9f0c2d7b41"
down_revision = None
branch_labels = None
depends_on = None


CASE_TYPES = (
    "DEMARCATION",
    "DPC",
    "OCCUPANCY",
    "COMPLETION",
    "WATER_CONNECTION",
    "SEWERAGE_CONNECTION",
    "TRANSFER",
    "MORTGAGE",
    "REGISTRATION",
)


def upgrade():
    op.create_table(
        "user_account",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=120), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.Enum("ADMIN", "OFFICER", "INSPECTOR", name="user_role"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "party",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("party_type", sa.String(length=20), nullable=False, server_default="individual"),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("address", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("phone", sa.String(length=30), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "property",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("parcel_no", sa.String(length=60), nullable=False),
        sa.Column("address", sa.String(length=255), nullable=False),
        sa.Column("area", sa.Numeric(precision=15, scale=2), nullable=False, server_default="0"),
        sa.Column("land_use", sa.String(length=40), nullable=True),
        sa.Column("owner_id", sa.Integer(), nullable=True),
        sa.Column(
            "status",
            sa.Enum("AVAILABLE", "ALLOTTED", "TRANSFERRED", "MORTGAGED", name="property_status"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["owner_id"], ["party.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("parcel_no"),
    )

    op.create_table(
        "sequence_counter",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("prefix", sa.String(length=30), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("current_value", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("prefix", "year", name="uq_sequence_counter_prefix_year"),
    )

    op.create_table(
        "workflow_case",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("case_type", sa.Enum(*CASE_TYPES, name="case_type"), nullable=False),
        sa.Column("case_number", sa.String(length=40), nullable=False),
        sa.Column("certificate_number", sa.String(length=40), nullable=True),
        sa.Column("status", sa.String(length=40), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("subject_id", sa.Integer(), nullable=False),
        sa.Column("party_id", sa.Integer(), nullable=False),
        sa.Column("counterparty_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("checklist", sa.JSON(), nullable=True),
        sa.Column("inspection_id", sa.Integer(), nullable=True),
        sa.Column("fee", sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column("sla_due", sa.DateTime(), nullable=True),
        sa.Column("pdf_path", sa.String(length=255), nullable=True),
        sa.Column("hash_sha256", sa.String(length=64), nullable=True),
        sa.Column("qr_code", sa.String(length=255), nullable=True),
        sa.Column("issued_at", sa.DateTime(), nullable=True),
        sa.Column("issued_by", sa.Integer(), nullable=True),
        sa.Column("rejection_reason", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("closure_reason", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "(certificate_number IS NULL AND pdf_path IS NULL AND hash_sha256 IS NULL "
            "AND qr_code IS NULL AND issued_at IS NULL) OR "
            "(certificate_number IS NOT NULL AND pdf_path IS NOT NULL AND hash_sha256 IS NOT NULL "
            "AND qr_code IS NOT NULL AND issued_at IS NOT NULL)",
            name="ck_workflow_case_issuance_all_or_nothing",
        ),
        sa.ForeignKeyConstraint(["subject_id"], ["property.id"]),
        sa.ForeignKeyConstraint(["party_id"], ["party.id"]),
        sa.ForeignKeyConstraint(["counterparty_id"], ["party.id"]),
        sa.ForeignKeyConstraint(["issued_by"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["created_by"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("case_number", name="uq_workflow_case_number"),
        sa.UniqueConstraint("certificate_number", name="uq_workflow_case_certificate_number"),
    )
    with op.batch_alter_table("workflow_case", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_workflow_case_subject_id"), ["subject_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_workflow_case_party_id"), ["party_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_workflow_case_hash_sha256"), ["hash_sha256"], unique=False)
        batch_op.create_index(batch_op.f("ix_workflow_case_created_at"), ["created_at"], unique=False)
    op.create_index("ix_workflow_case_type_status", "workflow_case", ["case_type", "status"], unique=False)

    op.create_table(
        "inspection",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("case_id", sa.Integer(), nullable=False),
        sa.Column("subject_id", sa.Integer(), nullable=False),
        sa.Column("inspection_type", sa.String(length=40), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(), nullable=False),
        sa.Column("inspected_by", sa.Integer(), nullable=True),
        sa.Column(
            "status",
            sa.Enum("SCHEDULED", "IN_PROGRESS", "COMPLETED", name="inspection_status"),
            nullable=False,
        ),
        sa.Column("result", sa.JSON(), nullable=True),
        sa.Column("photos", sa.JSON(), nullable=True),
        sa.Column("remarks", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("inspected_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["workflow_case.id"]),
        sa.ForeignKeyConstraint(["subject_id"], ["property.id"]),
        sa.ForeignKeyConstraint(["inspected_by"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("inspection", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_inspection_case_id"), ["case_id"], unique=False)

    # workflow_case and inspection reference each other
    with op.batch_alter_table("workflow_case", schema=None) as batch_op:
        batch_op.create_foreign_key("fk_workflow_case_inspection", "inspection", ["inspection_id"], ["id"])

    op.create_table(
        "case_event",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("case_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("from_status", sa.String(length=40), nullable=True),
        sa.Column("to_status", sa.String(length=40), nullable=False),
        sa.Column("details", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("event_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["workflow_case.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("case_event", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_case_event_case_id"), ["case_id"], unique=False)


def downgrade():
    with op.batch_alter_table("case_event", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_case_event_case_id"))
    op.drop_table("case_event")

    with op.batch_alter_table("workflow_case", schema=None) as batch_op:
        batch_op.drop_constraint("fk_workflow_case_inspection", type_="foreignkey")

    with op.batch_alter_table("inspection", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_inspection_case_id"))
    op.drop_table("inspection")

    op.drop_index("ix_workflow_case_type_status", table_name="workflow_case")
    with op.batch_alter_table("workflow_case", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_workflow_case_created_at"))
        batch_op.drop_index(batch_op.f("ix_workflow_case_hash_sha256"))
        batch_op.drop_index(batch_op.f("ix_workflow_case_party_id"))
        batch_op.drop_index(batch_op.f("ix_workflow_case_subject_id"))
    op.drop_table("workflow_case")

    op.drop_table("sequence_counter")
    op.drop_table("property")
    op.drop_table("party")
    op.drop_table("user_account")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_name in ("inspection_status", "case_type", "property_status", "user_role"):
            op.execute(sa.text(f"DROP TYPE IF EXISTS {enum_name}"))
