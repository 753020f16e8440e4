"""create pathways, options and tolls tables"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "20241018_init_pathways"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "nodes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("city_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_nodes_city_id", "nodes", ["city_id"])

    op.create_table(
        "pathways",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "origin_node_id", sa.Integer(), sa.ForeignKey("nodes.id"), nullable=False
        ),
        sa.Column(
            "destination_node_id",
            sa.Integer(),
            sa.ForeignKey("nodes.id"),
            nullable=False,
        ),
        sa.Column("origin_city_id", sa.Integer(), nullable=False),
        sa.Column("destination_city_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_sellable", sa.Boolean(), nullable=False, default=False),
        sa.Column("is_empty_trip", sa.Boolean(), nullable=False, default=False),
        sa.Column("active", sa.Boolean(), nullable=False, default=False),
        *_timestamps(),
    )
    for column in (
        "origin_node_id",
        "destination_node_id",
        "origin_city_id",
        "destination_city_id",
        "active",
        "deleted_at",
    ):
        op.create_index(f"ix_pathways_{column}", "pathways", [column])

    op.create_table(
        "pathway_options",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "pathway_id", sa.Integer(), sa.ForeignKey("pathways.id"), nullable=False
        ),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("distance_km", sa.Float(), nullable=True),
        sa.Column("typical_time_min", sa.Integer(), nullable=True),
        sa.Column("avg_speed_kmh", sa.Float(), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=True),
        sa.Column("is_pass_through", sa.Boolean(), nullable=True),
        sa.Column("pass_through_time_min", sa.Integer(), nullable=True),
        sa.Column("sequence", sa.Integer(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_pathway_options_pathway_id", "pathway_options", ["pathway_id"])
    op.create_index("ix_pathway_options_deleted_at", "pathway_options", ["deleted_at"])

    op.create_table(
        "pathway_option_tolls",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "pathway_option_id",
            sa.Integer(),
            sa.ForeignKey("pathway_options.id"),
            nullable=False,
        ),
        sa.Column("node_id", sa.Integer(), sa.ForeignKey("nodes.id"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("pass_time_min", sa.Integer(), nullable=True),
        sa.Column("distance", sa.Float(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_pathway_option_tolls_pathway_option_id",
        "pathway_option_tolls",
        ["pathway_option_id"],
    )
    op.create_index(
        "ix_pathway_option_tolls_node_id", "pathway_option_tolls", ["node_id"]
    )
    op.create_index(
        "ix_pathway_option_tolls_deleted_at", "pathway_option_tolls", ["deleted_at"]
    )
    op.create_index(
        "ix_pathway_option_tolls_option_sequence",
        "pathway_option_tolls",
        ["pathway_option_id", "sequence"],
    )


def downgrade() -> None:
    op.drop_table("pathway_option_tolls")
    op.drop_table("pathway_options")
    op.drop_table("pathways")
    op.drop_table("nodes")
