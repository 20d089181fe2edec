"""
初始数据库迁移脚本

创建所有基础表：
- organisations / organisation_members : 组织与成员
- users                                : 用户
- teams / team_members                 : 团队与成员
- workspaces 及其关联表                : 工作区森林、显式成员、关联实体
- knowledge_groups 及团队分配          : 知识组
- knowledge_entries                    : 知识条目
- knowledge_filters / knowledge_entry_filters : 过滤标签
- knowledge_chunks                     : 片段

Revision ID: 20241201_0001
Revises: 无（初始迁移）
Create Date: 2024-12-01 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# 迁移版本标识
revision: str = "20241201_0001"
down_revision: Union[str, None] = None  # 无前置迁移
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def _workspace_link_table(name: str, column: str, constraint: str) -> None:
    """工作区关联表：引用其他服务的实体，不建外键"""
    op.create_table(
        name,
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("workspace_id", sa.String(length=36), nullable=False),
        sa.Column(column, sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("workspace_id", column, name=constraint),
    )
    op.create_index(f"ix_{name}_workspace_id", name, ["workspace_id"])


def upgrade() -> None:
    """升级：创建所有表"""
    # ==================== 组织、用户、团队 ====================
    op.create_table(
        "organisations",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "users",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "organisation_members",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("organisation_id", sa.String(length=36), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["organisation_id"], ["organisations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "organisation_id", name="uq_org_member_user_org"),
    )
    op.create_index("ix_organisation_members_user_id", "organisation_members", ["user_id"])
    op.create_index("ix_organisation_members_organisation_id", "organisation_members", ["organisation_id"])

    op.create_table(
        "teams",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organisation_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=True),
        sa.ForeignKeyConstraint(["organisation_id"], ["organisations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organisation_id", "name", name="uq_team_org_name"),
    )
    op.create_index("ix_teams_organisation_id", "teams", ["organisation_id"])

    op.create_table(
        "team_members",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("team_id", sa.String(length=36), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "team_id", name="uq_team_member_user_team"),
    )
    op.create_index("ix_team_members_user_id", "team_members", ["user_id"])
    op.create_index("ix_team_members_team_id", "team_members", ["team_id"])

    # ==================== 工作区 ====================
    op.create_table(
        "workspaces",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organisation_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("team_id", sa.String(length=36), nullable=True),
        sa.Column("parent_id", sa.String(length=36), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=True),
        sa.ForeignKeyConstraint(["organisation_id"], ["organisations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["parent_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.CheckConstraint("user_id IS NULL OR team_id IS NULL", name="ck_workspace_single_owner"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_workspaces_organisation_id", "workspaces", ["organisation_id"])
    op.create_index("ix_workspaces_user_id", "workspaces", ["user_id"])
    op.create_index("ix_workspaces_team_id", "workspaces", ["team_id"])
    op.create_index("ix_workspaces_parent_id", "workspaces", ["parent_id"])

    op.create_table(
        "workspace_users",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("workspace_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("workspace_id", "user_id", name="uq_workspace_user"),
    )
    op.create_index("ix_workspace_users_workspace_id", "workspace_users", ["workspace_id"])
    op.create_index("ix_workspace_users_user_id", "workspace_users", ["user_id"])

    _workspace_link_table("workspace_prompt_templates", "prompt_template_id", "uq_workspace_prompt_template")
    _workspace_link_table("workspace_chat_groups", "chat_group_id", "uq_workspace_chat_group")
    _workspace_link_table("workspace_chat_sessions", "chat_session_id", "uq_workspace_chat_session")

    # ==================== 知识组 ====================
    op.create_table(
        "knowledge_groups",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organisation_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("organisation_wide_access", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["organisation_id"], ["organisations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_knowledge_groups_organisation_id", "knowledge_groups", ["organisation_id"])
    op.create_index("ix_knowledge_groups_user_id", "knowledge_groups", ["user_id"])

    op.create_table(
        "knowledge_group_team_assignments",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("knowledge_group_id", sa.String(length=36), nullable=False),
        sa.Column("team_id", sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(["knowledge_group_id"], ["knowledge_groups.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("knowledge_group_id", "team_id", name="uq_knowledge_group_team"),
    )
    op.create_index(
        "ix_knowledge_group_team_assignments_knowledge_group_id",
        "knowledge_group_team_assignments",
        ["knowledge_group_id"],
    )
    op.create_index(
        "ix_knowledge_group_team_assignments_team_id",
        "knowledge_group_team_assignments",
        ["team_id"],
    )

    # ==================== 知识条目 ====================
    op.create_table(
        "knowledge_entries",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organisation_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("team_id", sa.String(length=36), nullable=True),
        sa.Column("workspace_id", sa.String(length=36), nullable=True),
        sa.Column("knowledge_group_id", sa.String(length=36), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("abstract", sa.Text(), nullable=True),
        sa.Column("source_type", sa.String(length=20), nullable=True),
        sa.Column("source_id", sa.String(length=255), nullable=True),
        sa.Column("source_url", sa.String(length=2048), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(["organisation_id"], ["organisations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["knowledge_group_id"], ["knowledge_groups.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_knowledge_entries_organisation_id", "knowledge_entries", ["organisation_id"])
    op.create_index("ix_knowledge_entries_user_id", "knowledge_entries", ["user_id"])
    op.create_index("ix_knowledge_entries_team_id", "knowledge_entries", ["team_id"])
    op.create_index("ix_knowledge_entries_workspace_id", "knowledge_entries", ["workspace_id"])
    op.create_index("ix_knowledge_entries_knowledge_group_id", "knowledge_entries", ["knowledge_group_id"])

    op.create_table(
        "workspace_knowledge_entries",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("workspace_id", sa.String(length=36), nullable=False),
        sa.Column("knowledge_entry_id", sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["knowledge_entry_id"], ["knowledge_entries.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("workspace_id", "knowledge_entry_id", name="uq_workspace_knowledge_entry"),
    )
    op.create_index(
        "ix_workspace_knowledge_entries_workspace_id", "workspace_knowledge_entries", ["workspace_id"]
    )
    op.create_index(
        "ix_workspace_knowledge_entries_knowledge_entry_id",
        "workspace_knowledge_entries",
        ["knowledge_entry_id"],
    )

    # ==================== 过滤标签 ====================
    op.create_table(
        "knowledge_filters",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organisation_id", sa.String(length=36), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(["organisation_id"], ["organisations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "organisation_id", "category", "name", name="uq_knowledge_filter_org_category_name"
        ),
    )
    op.create_index("ix_knowledge_filters_organisation_id", "knowledge_filters", ["organisation_id"])
    op.create_index("ix_knowledge_filters_category", "knowledge_filters", ["category"])

    op.create_table(
        "knowledge_entry_filters",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("knowledge_entry_id", sa.String(length=36), nullable=False),
        sa.Column("knowledge_filter_id", sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(["knowledge_entry_id"], ["knowledge_entries.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["knowledge_filter_id"], ["knowledge_filters.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "knowledge_entry_id", "knowledge_filter_id", name="uq_knowledge_entry_filter"
        ),
    )
    op.create_index(
        "ix_knowledge_entry_filters_knowledge_entry_id", "knowledge_entry_filters", ["knowledge_entry_id"]
    )
    op.create_index(
        "ix_knowledge_entry_filters_knowledge_filter_id", "knowledge_entry_filters", ["knowledge_filter_id"]
    )

    # ==================== 片段 ====================
    op.create_table(
        "knowledge_chunks",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("knowledge_entry_id", sa.String(length=36), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("header", sa.String(length=1000), nullable=True),
        sa.Column("embedding", sa.JSON(), nullable=True),
        sa.Column("embedding_model", sa.String(length=100), nullable=True),
        sa.ForeignKeyConstraint(["knowledge_entry_id"], ["knowledge_entries.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("knowledge_entry_id", "order", name="uq_chunk_entry_order"),
    )
    op.create_index("ix_knowledge_chunks_knowledge_entry_id", "knowledge_chunks", ["knowledge_entry_id"])


def downgrade() -> None:
    """降级：按依赖关系逆序删除所有表"""
    op.drop_table("knowledge_chunks")
    op.drop_table("knowledge_entry_filters")
    op.drop_table("knowledge_filters")
    op.drop_table("workspace_knowledge_entries")
    op.drop_table("knowledge_entries")
    op.drop_table("knowledge_group_team_assignments")
    op.drop_table("knowledge_groups")
    op.drop_table("workspace_chat_sessions")
    op.drop_table("workspace_chat_groups")
    op.drop_table("workspace_prompt_templates")
    op.drop_table("workspace_users")
    op.drop_table("workspaces")
    op.drop_table("team_members")
    op.drop_table("teams")
    op.drop_table("organisation_members")
    op.drop_table("users")
    op.drop_table("organisations")
