"""
测试公共夹具

- 每个测试使用独立的 SQLite 文件数据库（aiosqlite），启动时建表
- Seeder 提供组织、用户、团队、工作区、条目、知识组、片段的快捷构造
"""

import os

# 必须在导入 app 之前设置，get_settings() 带缓存
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["EMBEDDING_DIM"] = "4"
os.environ["LOG_JSON"] = "false"

import pytest

from app.db.session import Database
from app.models import (
    KnowledgeChunk,
    KnowledgeEntry,
    KnowledgeGroup,
    KnowledgeGroupTeamAssignment,
    Organisation,
    OrganisationMember,
    Team,
    TeamMember,
    User,
    Workspace,
    WorkspaceUser,
)


class Seeder:
    """直接写库的测试数据构造器（绕过服务层的权限检查）"""

    def __init__(self, session):
        self.session = session

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.commit()
        return obj

    async def organisation(self, name: str) -> Organisation:
        return await self._save(Organisation(name=name))

    async def user(self, email: str, *memberships: tuple[Organisation, str]) -> User:
        user = await self._save(User(email=email))
        for organisation, role in memberships:
            await self._save(
                OrganisationMember(user_id=user.id, organisation_id=organisation.id, role=role)
            )
        return user

    async def team(self, organisation: Organisation, name: str, *members: User) -> Team:
        team = await self._save(Team(organisation_id=organisation.id, name=name))
        for member in members:
            await self._save(TeamMember(user_id=member.id, team_id=team.id))
        return team

    async def workspace(
        self,
        organisation: Organisation,
        name: str,
        *,
        owner: User | None = None,
        team: Team | None = None,
        parent: Workspace | None = None,
        members: tuple[User, ...] = (),
    ) -> Workspace:
        workspace = await self._save(
            Workspace(
                organisation_id=organisation.id,
                name=name,
                user_id=owner.id if owner else None,
                team_id=team.id if team else None,
                parent_id=parent.id if parent else None,
            )
        )
        for member in members:
            await self._save(WorkspaceUser(workspace_id=workspace.id, user_id=member.id))
        return workspace

    async def group(
        self,
        organisation: Organisation,
        name: str,
        *,
        owner: User | None = None,
        org_wide: bool = False,
        teams: tuple[Team, ...] = (),
    ) -> KnowledgeGroup:
        group = await self._save(
            KnowledgeGroup(
                organisation_id=organisation.id,
                name=name,
                user_id=owner.id if owner else None,
                organisation_wide_access=org_wide,
            )
        )
        for team in teams:
            await self._save(
                KnowledgeGroupTeamAssignment(knowledge_group_id=group.id, team_id=team.id)
            )
        return group

    async def entry(
        self,
        organisation: Organisation,
        name: str,
        *,
        owner: User | None = None,
        team: Team | None = None,
        workspace: Workspace | None = None,
        group: KnowledgeGroup | None = None,
        chunks: int = 0,
    ) -> KnowledgeEntry:
        entry = await self._save(
            KnowledgeEntry(
                organisation_id=organisation.id,
                name=name,
                user_id=owner.id if owner else None,
                team_id=team.id if team else None,
                workspace_id=workspace.id if workspace else None,
                knowledge_group_id=group.id if group else None,
            )
        )
        for order in range(chunks):
            await self._save(
                KnowledgeChunk(
                    knowledge_entry_id=entry.id,
                    order=order,
                    text=f"{name} #{order}",
                    embedding=[float(order), 0.0, 0.0, 1.0],
                )
            )
        return entry


@pytest.fixture
async def database(tmp_path):
    """独立的文件数据库（多个会话共享同一份数据）"""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    db.init()
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
async def session(database):
    async with database.session() as s:
        yield s


@pytest.fixture
def seed(session):
    return Seeder(session)


@pytest.fixture
async def world(seed):
    """
    标准场景

    组织 O：
        alice (admin) : 团队 T1
        bob   (member): 团队 T1，同时是组织 P 中团队 TP 的成员
        carol (member): 团队 T2
        dave  (member): 没有团队
    组织 P：
        eve   (member): 团队 TP
    """
    org = await seed.organisation("O")
    other = await seed.organisation("P")

    alice = await seed.user("alice@example.com", (org, "admin"))
    bob = await seed.user("bob@example.com", (org, "member"), (other, "member"))
    carol = await seed.user("carol@example.com", (org, "member"))
    dave = await seed.user("dave@example.com", (org, "member"))
    eve = await seed.user("eve@example.com", (other, "member"))

    t1 = await seed.team(org, "T1", alice, bob)
    t2 = await seed.team(org, "T2", carol)
    tp = await seed.team(other, "TP", bob, eve)

    return {
        "org": org,
        "other": other,
        "alice": alice,
        "bob": bob,
        "carol": carol,
        "dave": dave,
        "eve": eve,
        "t1": t1,
        "t2": t2,
        "tp": tp,
    }
