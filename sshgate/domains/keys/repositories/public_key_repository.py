"""
Public Key Repository
공개키 저장소 데이터 액세스 레이어
"""

import base64
import binascii
import hashlib
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import aiosqlite

from sshgate.core.logger import logger
from sshgate.core.exceptions import (
    ErrorCode,
    KeyNotFoundException,
    KeyStoreException,
)
from sshgate.domains.keys.interfaces.identity_lookup import IdentityLookupInterface
from sshgate.domains.keys.models.public_key import PublicKey


def fingerprint_of(content: str) -> str:
    """authorized_keys 형식 공개키의 SHA256 fingerprint"""
    parts = content.split()
    if len(parts) < 2:
        raise ValueError(f"malformed public key: {content!r}")
    try:
        blob = base64.b64decode(parts[1], validate=True)
    except binascii.Error as e:
        raise ValueError(f"malformed public key body: {e}") from e
    digest = base64.b64encode(hashlib.sha256(blob).digest()).rstrip(b"=").decode("ascii")
    return f"SHA256:{digest}"


class PublicKeyRepository(IdentityLookupInterface):
    """public_key 테이블 Repository (SQLite)"""

    def __init__(self, db_path: str = "data/public_keys.db"):
        """
        Args:
            db_path: SQLite 데이터베이스 파일 경로
        """
        self.db_path = db_path
        self._ensure_db_directory()

    def _ensure_db_directory(self) -> None:
        """데이터베이스 디렉토리 생성"""
        db_dir = Path(self.db_path).parent
        db_dir.mkdir(parents=True, exist_ok=True)

    async def _get_connection(self) -> aiosqlite.Connection:
        """데이터베이스 연결 획득"""
        try:
            conn = await aiosqlite.connect(self.db_path)
            conn.row_factory = aiosqlite.Row
            return conn
        except Exception as e:
            logger.error(f"[KeyRepo] Failed to connect to database: {e}", exc_info=True)
            raise KeyStoreException(
                db_path=self.db_path,
                detail=str(e),
                original_exception=e
            )

    async def initialize_db(self) -> None:
        """데이터베이스 초기화 (테이블 생성)"""
        try:
            async with await self._get_connection() as db:
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS public_key (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        owner_id INTEGER NOT NULL,
                        name TEXT NOT NULL,
                        fingerprint TEXT NOT NULL,
                        content TEXT NOT NULL UNIQUE,
                        created_at TEXT NOT NULL DEFAULT (datetime('now'))
                    )
                """)
                await db.execute(
                    "CREATE INDEX IF NOT EXISTS idx_public_key_owner_id ON public_key(owner_id)"
                )
                await db.commit()
                logger.info(f"[KeyRepo] Database initialized: {self.db_path}")
        except KeyStoreException:
            raise
        except Exception as e:
            logger.error(f"[KeyRepo] Failed to initialize database: {e}", exc_info=True)
            raise KeyStoreException(
                db_path=self.db_path,
                detail=str(e),
                original_exception=e
            )

    async def add_key(self, owner_id: int, name: str, content: str) -> PublicKey:
        """공개키 등록

        Args:
            owner_id: 키 소유 계정 ID
            name: 키 이름
            content: authorized_keys 형식 공개키 (주석은 제거됨)

        Returns:
            등록된 PublicKey

        Raises:
            KeyStoreException: 형식 오류 또는 중복 등록
        """
        parts = content.strip().split()
        try:
            fingerprint = fingerprint_of(content)
        except ValueError as e:
            raise KeyStoreException(
                db_path=self.db_path,
                detail=str(e),
                error_code=ErrorCode.KEY_INVALID,
                original_exception=e
            )
        canonical = f"{parts[0]} {parts[1]}"

        try:
            async with await self._get_connection() as db:
                cursor = await db.execute(
                    "INSERT INTO public_key (owner_id, name, fingerprint, content) VALUES (?, ?, ?, ?)",
                    (owner_id, name, fingerprint, canonical)
                )
                await db.commit()
                key_id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise KeyStoreException(
                db_path=self.db_path,
                detail=f"key {fingerprint} is already registered",
                error_code=ErrorCode.KEY_ALREADY_EXISTS,
                original_exception=e
            )
        except KeyStoreException:
            raise
        except Exception as e:
            logger.error(f"[KeyRepo] Failed to add key: {e}", exc_info=True)
            raise KeyStoreException(db_path=self.db_path, detail=str(e), original_exception=e)

        logger.info(f"[KeyRepo] Key added: id={key_id}, owner={owner_id}, fingerprint={fingerprint}")
        return PublicKey(
            id=key_id,
            owner_id=owner_id,
            name=name,
            fingerprint=fingerprint,
            content=canonical,
            created_at=datetime.now(),
        )

    async def search_by_content(self, content: str) -> PublicKey:
        """공개키 내용으로 레코드 조회"""
        try:
            async with await self._get_connection() as db:
                async with db.execute(
                    "SELECT * FROM public_key WHERE content = ?", (content,)
                ) as cursor:
                    row = await cursor.fetchone()
        except KeyStoreException:
            raise
        except Exception as e:
            logger.error(f"[KeyRepo] Failed to search key: {e}", exc_info=True)
            raise KeyStoreException(
                db_path=self.db_path,
                detail=str(e),
                error_code=ErrorCode.KEY_LOOKUP_FAILED,
                original_exception=e
            )

        if row is None:
            try:
                fingerprint = fingerprint_of(content)
            except ValueError:
                fingerprint = None
            raise KeyNotFoundException(fingerprint=fingerprint)

        return self._row_to_model(row)

    async def list_keys(self, owner_id: Optional[int] = None) -> List[PublicKey]:
        """등록된 키 목록 조회"""
        query = "SELECT * FROM public_key"
        params = ()
        if owner_id is not None:
            query += " WHERE owner_id = ?"
            params = (owner_id,)
        query += " ORDER BY id"

        async with await self._get_connection() as db:
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
        return [self._row_to_model(row) for row in rows]

    async def delete_key(self, key_id: int) -> bool:
        """키 삭제. 삭제되면 True"""
        async with await self._get_connection() as db:
            cursor = await db.execute("DELETE FROM public_key WHERE id = ?", (key_id,))
            await db.commit()
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"[KeyRepo] Key deleted: id={key_id}")
        return deleted

    @staticmethod
    def _row_to_model(row: aiosqlite.Row) -> PublicKey:
        created_at = row["created_at"]
        return PublicKey(
            id=row["id"],
            owner_id=row["owner_id"],
            name=row["name"],
            fingerprint=row["fingerprint"],
            content=row["content"],
            created_at=datetime.fromisoformat(created_at) if created_at else None,
        )
