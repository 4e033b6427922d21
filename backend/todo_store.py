"""
Persistence for users and their todos.

``PostgresStore`` is the production backend (asyncpg pool, one connection per
call). ``InMemoryStore`` keeps everything in dicts for tests and local runs.
Handlers never call the store with a raw owner id; they go through
``OwnedTodos``, which binds the authenticated owner to every operation.
"""
import abc
import logging
import ssl
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

import asyncpg

from errors import InvalidInput, NotFound, StoreFailure, VoiceTodoError
from schemas import MAX_INT4, Todo, User, utc_now

logger = logging.getLogger(__name__)

# TodoUpdate field -> todos column
UPDATABLE_COLUMNS = {
    "title": "title",
    "estimated_time": "estimated_time",
    "completed": "completed",
    "order": "sort_order",
    "created_at": "created_at",
}

TODO_COLUMNS = """id, user_id, title, estimated_time, completed, sort_order AS "order",
                  created_at, updated_at"""
USER_COLUMNS = "id, email, name, image, created_at, updated_at"


def todo_not_found() -> NotFound:
    # Same answer for unknown ids and for todos owned by someone else
    return NotFound("Todo not found")


def _in_id_range(todo_id: int) -> bool:
    # SERIAL ids are positive int4
    return 0 < todo_id <= MAX_INT4


def _valid_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    filtered = {k: v for k, v in patch.items() if k in UPDATABLE_COLUMNS}
    if not filtered:
        raise InvalidInput("No valid fields to update")
    return filtered


class TodoStore(abc.ABC):

    @abc.abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[User]:
        ...

    @abc.abstractmethod
    async def upsert_oauth_user(
        self, email: str, name: str, image: Optional[str], provider: str, provider_account_id: str
    ) -> User:
        """Create the user on first sign-in, refresh name/image afterwards."""

    @abc.abstractmethod
    async def list_todos(self, owner_id: str) -> List[Todo]:
        ...

    @abc.abstractmethod
    async def create_todo(
        self, owner_id: str, title: str, estimated_time: int, created_at: Optional[datetime] = None
    ) -> Todo:
        ...

    @abc.abstractmethod
    async def update_todo(self, todo_id: int, owner_id: str, patch: Dict[str, Any]) -> Todo:
        ...

    @abc.abstractmethod
    async def delete_todo(self, todo_id: int, owner_id: str) -> None:
        ...

    async def close(self) -> None:
        pass

    def for_owner(self, owner_id: str) -> "OwnedTodos":
        return OwnedTodos(self, owner_id)


class OwnedTodos:
    """Todo operations scoped to one authenticated owner."""

    def __init__(self, store: TodoStore, owner_id: str):
        self.store = store
        self.owner_id = owner_id

    async def list(self) -> List[Todo]:
        return await self.store.list_todos(self.owner_id)

    async def create(self, title: str, estimated_time: int, created_at: Optional[datetime] = None) -> Todo:
        return await self.store.create_todo(self.owner_id, title, estimated_time, created_at)

    async def update(self, todo_id: int, patch: Dict[str, Any]) -> Todo:
        return await self.store.update_todo(todo_id, self.owner_id, patch)

    async def delete(self, todo_id: int) -> None:
        await self.store.delete_todo(todo_id, self.owner_id)


# ============ POSTGRES ============
class PostgresStore(TodoStore):

    def __init__(self, dsn: str, use_ssl: bool = True, min_size: int = 1, max_size: int = 10):
        self.dsn = dsn
        self.use_ssl = use_ssl
        self.min_size = min_size
        self.max_size = max_size
        self.pool = None

    async def get_pool(self):
        if self.pool is None:
            ssl_ctx = None
            if self.use_ssl:
                ssl_ctx = ssl.create_default_context()
                ssl_ctx.check_hostname = False
                ssl_ctx.verify_mode = ssl.CERT_NONE
            self.pool = await asyncpg.create_pool(
                self.dsn,
                ssl=ssl_ctx,
                min_size=self.min_size,
                max_size=self.max_size,
                statement_cache_size=0  # Required for pgbouncer / transaction poolers
            )
        return self.pool

    @asynccontextmanager
    async def _connection(self, failure_message: str):
        try:
            pool = await self.get_pool()
            async with pool.acquire() as conn:
                yield conn
        except VoiceTodoError:
            raise
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            logger.error(f"{failure_message}: {type(e).__name__}: {e}", exc_info=True)
            raise StoreFailure(failure_message) from e

    async def close(self) -> None:
        if self.pool:
            await self.pool.close()
            self.pool = None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        async with self._connection("Failed to load user") as conn:
            row = await conn.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE email = $1", email.lower()
            )
        return User(**dict(row)) if row else None

    async def upsert_oauth_user(self, email, name, image, provider, provider_account_id) -> User:
        email = email.lower()
        now = utc_now()
        async with self._connection("Failed to save user") as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    """SELECT u.id FROM users u JOIN accounts a ON a.user_id = u.id
                        WHERE a.provider = $1 AND a.provider_account_id = $2""",
                    provider, provider_account_id
                )
                if row is None:
                    row = await conn.fetchrow("SELECT id FROM users WHERE email = $1", email)

                if row:
                    user_id = row["id"]
                    await conn.execute(
                        """UPDATE users SET name = COALESCE(NULLIF($1, ''), name),
                           image = COALESCE($2, image), updated_at = $3 WHERE id = $4""",
                        name, image, now, user_id
                    )
                else:
                    user_id = str(uuid.uuid4())
                    await conn.execute(
                        """INSERT INTO users (id, email, name, image, created_at, updated_at)
                           VALUES ($1, $2, $3, $4, $5, $5)""",
                        user_id, email, name or "", image, now
                    )
                    logger.info(f"Created user {user_id} for {email}")

                await conn.execute(
                    """INSERT INTO accounts (id, user_id, provider, provider_account_id)
                       VALUES ($1, $2, $3, $4)
                       ON CONFLICT (provider, provider_account_id) DO NOTHING""",
                    str(uuid.uuid4()), user_id, provider, provider_account_id
                )
                user = await conn.fetchrow(f"SELECT {USER_COLUMNS} FROM users WHERE id = $1", user_id)
        return User(**dict(user))

    async def list_todos(self, owner_id: str) -> List[Todo]:
        async with self._connection("Failed to fetch todos") as conn:
            rows = await conn.fetch(
                f"""SELECT {TODO_COLUMNS} FROM todos
                    WHERE user_id = $1 ORDER BY sort_order ASC, id ASC""",
                owner_id
            )
        return [Todo(**dict(row)) for row in rows]

    async def create_todo(self, owner_id, title, estimated_time, created_at=None) -> Todo:
        created_at = created_at or utc_now()
        async with self._connection("Failed to create todo") as conn:
            # MAX over no rows is NULL, so the first todo gets order 0
            row = await conn.fetchrow(
                f"""INSERT INTO todos (user_id, title, estimated_time, completed, sort_order, created_at, updated_at)
                    SELECT $1, $2, $3, FALSE, COALESCE(MAX(sort_order), -1) + 1, $4, $4
                    FROM todos WHERE user_id = $1
                    RETURNING {TODO_COLUMNS}""",
                owner_id, title, estimated_time, created_at
            )
        todo = Todo(**dict(row))
        logger.info(f"Todo created: id={todo.id}, user_id={owner_id}, order={todo.order}")
        return todo

    async def update_todo(self, todo_id, owner_id, patch) -> Todo:
        filtered = _valid_patch(patch)
        if not _in_id_range(todo_id):
            raise todo_not_found()

        set_clauses = []
        values = []
        param_num = 1
        for key, value in filtered.items():
            set_clauses.append(f"{UPDATABLE_COLUMNS[key]} = ${param_num}")
            values.append(value)
            param_num += 1
        set_clauses.append(f"updated_at = ${param_num}")
        values.append(utc_now())
        param_num += 1

        where_clause = f"id = ${param_num} AND user_id = ${param_num + 1}"
        values.extend([todo_id, owner_id])

        query = f"""UPDATE todos SET {', '.join(set_clauses)}
                    WHERE {where_clause}
                    RETURNING {TODO_COLUMNS}"""

        logger.info(f"[update_todo] todo_id={todo_id}, fields={list(filtered.keys())}")
        async with self._connection("Failed to update todo") as conn:
            row = await conn.fetchrow(query, *values)
        if not row:
            raise todo_not_found()
        return Todo(**dict(row))

    async def delete_todo(self, todo_id, owner_id) -> None:
        if not _in_id_range(todo_id):
            raise todo_not_found()
        async with self._connection("Failed to delete todo") as conn:
            result = await conn.execute(
                "DELETE FROM todos WHERE id = $1 AND user_id = $2", todo_id, owner_id
            )
        if result == "DELETE 0":
            logger.warning(f"Todo not found for deletion: todo_id={todo_id}, user_id={owner_id}")
            raise todo_not_found()
        logger.info(f"Todo deleted: todo_id={todo_id}, user_id={owner_id}")


# ============ IN-MEMORY ============
class InMemoryStore(TodoStore):
    """Dict-backed store with the same semantics as PostgresStore."""

    def __init__(self):
        self.users: Dict[str, User] = {}
        self.accounts: Dict[tuple, str] = {}  # (provider, account id) -> user id
        self.todos: Dict[int, Todo] = {}
        self._next_todo_id = 1

    async def get_user_by_email(self, email: str) -> Optional[User]:
        email = email.lower()
        for user in self.users.values():
            if user.email == email:
                return user.model_copy()
        return None

    async def upsert_oauth_user(self, email, name, image, provider, provider_account_id) -> User:
        email = email.lower()
        now = utc_now()
        user_id = self.accounts.get((provider, provider_account_id))
        user = self.users.get(user_id) if user_id else None
        if user is None:
            user = next((u for u in self.users.values() if u.email == email), None)

        if user:
            user = user.model_copy(update={
                "name": name or user.name,
                "image": image if image is not None else user.image,
                "updated_at": now,
            })
        else:
            user = User(email=email, name=name or "", image=image, created_at=now, updated_at=now)
            logger.info(f"Created user {user.id} for {email}")

        self.users[user.id] = user
        self.accounts.setdefault((provider, provider_account_id), user.id)
        return user.model_copy()

    async def list_todos(self, owner_id: str) -> List[Todo]:
        owned = [t for t in self.todos.values() if t.user_id == owner_id]
        return [t.model_copy() for t in sorted(owned, key=lambda t: (t.order, t.id))]

    async def create_todo(self, owner_id, title, estimated_time, created_at=None) -> Todo:
        created_at = created_at or utc_now()
        orders = [t.order for t in self.todos.values() if t.user_id == owner_id]
        todo = Todo(
            id=self._next_todo_id,
            user_id=owner_id,
            title=title,
            estimated_time=estimated_time,
            completed=False,
            order=max(orders) + 1 if orders else 0,
            created_at=created_at,
            updated_at=created_at,
        )
        self._next_todo_id += 1
        self.todos[todo.id] = todo
        logger.info(f"Todo created: id={todo.id}, user_id={owner_id}, order={todo.order}")
        return todo.model_copy()

    def _owned(self, todo_id: int, owner_id: str) -> Todo:
        todo = self.todos.get(todo_id)
        if todo is None or todo.user_id != owner_id:
            raise todo_not_found()
        return todo

    async def update_todo(self, todo_id, owner_id, patch) -> Todo:
        filtered = _valid_patch(patch)
        todo = self._owned(todo_id, owner_id)
        updated = todo.model_copy(update={**filtered, "updated_at": utc_now()})
        self.todos[todo_id] = updated
        return updated.model_copy()

    async def delete_todo(self, todo_id, owner_id) -> None:
        self._owned(todo_id, owner_id)
        del self.todos[todo_id]
        logger.info(f"Todo deleted: todo_id={todo_id}, user_id={owner_id}")


def create_store(config) -> TodoStore:
    if config.STORE_BACKEND == "memory":
        logger.warning("Using InMemoryStore - todos are lost when the process exits")
        return InMemoryStore()
    return PostgresStore(config.DATABASE_URL, use_ssl=config.DATABASE_SSL)
