"""
知识过滤标签模型 (KnowledgeFilter)

过滤标签是组织内按分类（category）组织的标签词表，
(organisation_id, category, name) 唯一。
条目与标签通过 knowledge_entry_filters 多对多关联。
"""

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import ID_PK, TimestampMixin, new_id


class KnowledgeFilter(TimestampMixin, Base):
    """过滤标签表"""
    __tablename__ = "knowledge_filters"

    __table_args__ = (
        UniqueConstraint(
            "organisation_id", "category", "name", name="uq_knowledge_filter_org_category_name"
        ),
    )

    id: Mapped[ID_PK] = mapped_column(String(36), primary_key=True, default=new_id)

    organisation_id: Mapped[str] = mapped_column(
        ForeignKey("organisations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)


class KnowledgeEntryFilter(TimestampMixin, Base):
    """条目与过滤标签的关联表"""
    __tablename__ = "knowledge_entry_filters"

    __table_args__ = (
        UniqueConstraint(
            "knowledge_entry_id", "knowledge_filter_id", name="uq_knowledge_entry_filter"
        ),
    )

    id: Mapped[ID_PK] = mapped_column(String(36), primary_key=True, default=new_id)

    knowledge_entry_id: Mapped[str] = mapped_column(
        ForeignKey("knowledge_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    knowledge_filter_id: Mapped[str] = mapped_column(
        ForeignKey("knowledge_filters.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
