"""create identity and audit tables"""

from alembic import op
import sqlalchemy as sa


revision = "202610010001"
down_revision = None
branch_labels = None
depends_on = None

ROLES = ("ADMIN", "EDITOR", "VIEWER")
ACTIONS = ("CREATE", "UPDATE", "DELETE", "LOGIN", "LOGOUT", "EXPORT", "IMPORT")


def upgrade() -> None:
    op.create_table(
        "identities",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "role",
            sa.Enum(*ROLES, name="identity_role", native_enum=False, length=16),
            nullable=False,
            server_default="VIEWER",
        ),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")
        ),
        sa.Column("last_login_at", sa.DateTime(timezone=True)),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_identities_email", "identities", ["email"], unique=True)

    op.create_table(
        "audit_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_id", sa.Integer(), nullable=False),
        sa.Column(
            "action",
            sa.Enum(*ACTIONS, name="audit_action", native_enum=False, length=16),
            nullable=False,
        ),
        sa.Column("entity_type", sa.String(length=120), nullable=False),
        sa.Column("entity_id", sa.String(length=120)),
        sa.Column("detail", sa.JSON()),
        sa.Column("ip_address", sa.String(length=64)),
        sa.Column("user_agent", sa.String(length=255)),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(
            ["actor_id"], ["identities.id"], ondelete="RESTRICT"
        ),
    )
    op.create_index("ix_audit_records_actor_id", "audit_records", ["actor_id"])
    op.create_index("ix_audit_records_action", "audit_records", ["action"])
    op.create_index(
        "ix_audit_records_entity_type", "audit_records", ["entity_type"]
    )
    op.create_index(
        "ix_audit_records_created_at", "audit_records", ["created_at"]
    )
    op.create_index(
        "ix_audit_records_actor_created",
        "audit_records",
        ["actor_id", "created_at"],
    )
    op.create_index(
        "ix_audit_records_action_created",
        "audit_records",
        ["action", "created_at"],
    )
    op.create_index(
        "ix_audit_records_entity_type_created",
        "audit_records",
        ["entity_type", "created_at"],
    )


def downgrade() -> None:
    op.drop_table("audit_records")
    op.drop_index("ix_identities_email", table_name="identities")
    op.drop_table("identities")
