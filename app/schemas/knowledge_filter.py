"""过滤标签相关的请求/响应模型"""

from pydantic import BaseModel, Field


class KnowledgeFilterUpsert(BaseModel):
    """创建（或获取已有）过滤标签"""
    category: str = Field(..., min_length=1, max_length=100, description="分类")
    name: str = Field(..., min_length=1, max_length=255, description="标签名")


class KnowledgeFilterRename(BaseModel):
    """重命名单个标签"""
    category: str = Field(..., min_length=1, max_length=100)
    old_name: str = Field(..., min_length=1, max_length=255)
    new_name: str = Field(..., min_length=1, max_length=255)


class KnowledgeFilterRecategorize(BaseModel):
    """把一个分类下的所有标签整体移动到新分类"""
    old_category: str = Field(..., min_length=1, max_length=100)
    new_category: str = Field(..., min_length=1, max_length=100)


class KnowledgeFilterResponse(BaseModel):
    """过滤标签响应"""
    id: str
    organisation_id: str
    category: str
    name: str

    class Config:
        from_attributes = True


class RecategorizeResponse(BaseModel):
    """整体移动结果"""
    moved: int = Field(..., description="移动的标签数量（含合并）")


class KnowledgeFiltersByCategory(BaseModel):
    """按分类分组的标签名：{category: [name, ...]}，按分类、名称排序"""
    categories: dict[str, list[str]]


class EntryFilterAssign(BaseModel):
    """为条目挂载标签"""
    filter_id: str = Field(..., description="过滤标签 ID")
