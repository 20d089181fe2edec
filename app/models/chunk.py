"""
知识片段模型 (KnowledgeChunk) - 相似度检索的基本单位

数据流向: KnowledgeEntry → 切分 → Chunks → 外部向量打分

片段本身不携带任何共享维度，可见性永远由所属条目决定。
"""

from sqlalchemy import ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.config import get_settings
from app.db.base import Base
from app.models.mixins import ID_PK, TimestampMixin, new_id


class KnowledgeChunk(TimestampMixin, Base):
    """片段表：存储切分后的文本片段及其向量"""
    __tablename__ = "knowledge_chunks"

    __table_args__ = (
        UniqueConstraint("knowledge_entry_id", "order", name="uq_chunk_entry_order"),
    )

    id: Mapped[ID_PK] = mapped_column(String(36), primary_key=True, default=new_id)

    # 所属条目
    knowledge_entry_id: Mapped[str] = mapped_column(
        ForeignKey("knowledge_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # 在条目中的顺序，从 0 开始；上下文扩展依赖它
    order: Mapped[int] = mapped_column(Integer, nullable=False)

    # 使用 Text 类型支持长文本（PostgreSQL 中无长度限制）
    text: Mapped[str] = mapped_column(Text, nullable=False)

    # 片段所在章节标题
    header: Mapped[str | None] = mapped_column(String(1000))

    # 向量：固定维度的浮点数组，尚未计算时为空
    embedding: Mapped[list[float] | None] = mapped_column(JSON)

    embedding_model: Mapped[str | None] = mapped_column(String(100))

    @validates("embedding")
    def _validate_embedding(self, _key, value):
        if value is None:
            return value
        expected = get_settings().embedding_dim
        if len(value) != expected:
            raise ValueError(
                f"embedding dimension mismatch: expected {expected}, got {len(value)}"
            )
        return [float(v) for v in value]
