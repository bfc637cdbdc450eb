"""Document store backends.

Documents are JSON objects grouped into collections and addressed by string
ids. Every backend exposes an opaque version token per document so callers
can make a read-modify-write conditional with ``set_if_version``.
"""

import base64
import fcntl
import json
import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import requests

from .config import get_data_dir, get_github_settings
from .errors import ConcurrencyConflict, DocumentNotFound, StoreError
from .utils import load_json, save_json

logger = logging.getLogger('apl.store')

VERSION_FIELD = '_version'
LOCK_FILE = '.lock'

# Sentinel for unconditional writes
ANY_VERSION = object()

# (field, op, value); op is '==' or 'array-contains'
Condition = tuple[str, str, Any]


def matches_conditions(doc: dict[str, Any], conditions: tuple[Condition, ...]) -> bool:
    """Check a document against equality / array-contains conditions."""
    for field, op, value in conditions:
        current = doc.get(field)
        if op == '==':
            if current != value:
                return False
        elif op == 'array-contains':
            if not isinstance(current, list) or value not in current:
                return False
        else:
            raise ValueError(f'Unsupported query operator: {op}')
    return True


def _check_doc_id(doc_id: str) -> None:
    if not doc_id or '/' in doc_id or doc_id.startswith('.'):
        raise ValueError(f'Invalid document id: {doc_id!r}')


class DocumentStore:
    """
    Base class for document stores.

    Subclasses implement the storage primitives (_read, _write, _remove,
    _ids); querying, merging and conditional writes are shared here.
    """

    merge_attempts = 5

    def _read(self, collection: str, doc_id: str) -> tuple[dict[str, Any] | None, str | None]:
        raise NotImplementedError

    def _write(
        self, collection: str, doc_id: str, data: dict[str, Any], expected_version: Any
    ) -> str:
        raise NotImplementedError

    def _remove(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError

    def _ids(self, collection: str) -> list[str]:
        raise NotImplementedError

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return a document, or None if it doesn't exist."""
        doc, _version = self._read(collection, doc_id)
        return doc

    def get_versioned(
        self, collection: str, doc_id: str
    ) -> tuple[dict[str, Any] | None, str | None]:
        """Return a document with its version token (both None if missing)."""
        return self._read(collection, doc_id)

    def require(self, collection: str, doc_id: str) -> dict[str, Any]:
        """Return a document, raising DocumentNotFound if it doesn't exist."""
        doc = self.get(collection, doc_id)
        if doc is None:
            raise DocumentNotFound(collection, doc_id)
        return doc

    def exists(self, collection: str, doc_id: str) -> bool:
        return self.get(collection, doc_id) is not None

    def set(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        """Create or overwrite a document; with merge=True, top-level fields are merged."""
        _check_doc_id(doc_id)
        if merge:
            self._merge(collection, doc_id, data, must_exist=False)
        else:
            self._write(collection, doc_id, data, ANY_VERSION)

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Merge fields into an existing document and return the result."""
        return self._merge(collection, doc_id, fields, must_exist=True)

    def modify(
        self,
        collection: str,
        doc_id: str,
        fn: Callable[[dict[str, Any]], dict[str, Any]],
        must_exist: bool = True,
    ) -> dict[str, Any]:
        """
        Read-modify-write a document.

        fn gets the current document ({} if missing and must_exist is False)
        and returns the new one. The write is conditional on the version read
        and fn is re-applied to a fresh read on conflict.

        Example:
            store.modify('leagues', league_id, lambda doc: {
                **doc, 'members': doc['members'] + [user_id]})
        """
        _check_doc_id(doc_id)
        for _attempt in range(self.merge_attempts):
            current, version = self._read(collection, doc_id)
            if current is None and must_exist:
                raise DocumentNotFound(collection, doc_id)
            updated = fn(dict(current or {}))
            try:
                self._write(collection, doc_id, updated, version)
                return updated
            except ConcurrencyConflict:
                logger.debug(f'{collection}/{doc_id} changed during update, re-reading')
        raise ConcurrencyConflict(f'{collection}/{doc_id} kept changing during update')

    def _merge(
        self, collection: str, doc_id: str, fields: dict[str, Any], must_exist: bool
    ) -> dict[str, Any]:
        return self.modify(collection, doc_id, lambda doc: {**doc, **fields}, must_exist)

    def set_if_version(
        self, collection: str, doc_id: str, data: dict[str, Any], version: str | None
    ) -> str:
        """
        Write a document only if its version is still ``version``.

        Pass version=None to create a document that must not exist yet.

        Returns:
            The new version token

        Raises:
            ConcurrencyConflict: If another writer got there first
        """
        _check_doc_id(doc_id)
        return self._write(collection, doc_id, data, version)

    def delete(self, collection: str, doc_id: str) -> None:
        self._remove(collection, doc_id)

    def list_ids(self, collection: str) -> list[str]:
        return sorted(self._ids(collection))

    def query(self, collection: str, *conditions: Condition) -> list[tuple[str, dict[str, Any]]]:
        """
        Return (doc_id, document) pairs matching all conditions, ordered by id.

        Example:
            store.query('userTeams', ('tournamentId', '==', 'ipl-2025'))
            store.query('leagues', ('members', 'array-contains', user_id))
        """
        results = []
        for doc_id in self.list_ids(collection):
            doc = self.get(collection, doc_id)
            if doc is not None and matches_conditions(doc, conditions):
                results.append((doc_id, doc))
        return results


class JsonFileStore(DocumentStore):
    """
    Store documents as JSON files under ``root/collection/doc_id.json``.

    The version token is an integer counter kept in the document itself.
    Writes to a collection hold an flock on its ``.lock`` file, so
    conditional writes are serialized across processes sharing the
    directory (POSIX only).
    """

    def __init__(self, root: Path | str):
        self.root = Path(root)
        self._lock = threading.RLock()

    def _path(self, collection: str, doc_id: str) -> Path:
        _check_doc_id(doc_id)
        return self.root / collection / f'{doc_id}.json'

    def _read(self, collection, doc_id):
        path = self._path(collection, doc_id)
        if not path.exists():
            return None, None
        data = load_json(path)
        version = data.pop(VERSION_FIELD, 0)
        return data, str(version)

    @contextmanager
    def _locked(self, collection: str) -> Iterator[None]:
        directory = self.root / collection
        directory.mkdir(parents=True, exist_ok=True)
        with self._lock, open(directory / LOCK_FILE, 'a') as handle:
            fcntl.flock(handle, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle, fcntl.LOCK_UN)

    def _write(self, collection, doc_id, data, expected_version):
        with self._locked(collection):
            _current, version = self._read(collection, doc_id)
            if expected_version is not ANY_VERSION and expected_version != version:
                raise ConcurrencyConflict(
                    f'{collection}/{doc_id} is at version {version}, expected {expected_version}'
                )
            new_version = int(version or 0) + 1
            save_json(self._path(collection, doc_id), {**data, VERSION_FIELD: new_version})
            return str(new_version)

    def _remove(self, collection, doc_id):
        with self._locked(collection):
            self._path(collection, doc_id).unlink(missing_ok=True)

    def _ids(self, collection):
        directory = self.root / collection
        if not directory.is_dir():
            return []
        return [p.stem for p in directory.glob('*.json')]


class GitHubContentsStore(DocumentStore):
    """
    Store documents as files in a GitHub repository via the contents API.

    The blob sha of each file is its version token; GitHub rejects a PUT
    carrying a stale sha, which surfaces here as ConcurrencyConflict.
    """

    API_BASE = 'https://api.github.com'

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str,
        branch: str = 'main',
        prefix: str = 'data/store',
        session: requests.Session | None = None,
        max_retries: int = 3,
        timeout: int = 30,
    ):
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.prefix = prefix.strip('/')
        self.max_retries = max_retries
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                'Authorization': f'Bearer {token}',
                'Accept': 'application/vnd.github.v3+json',
                'User-Agent': 'APL-Store',
            }
        )

    def _url(self, collection: str, doc_id: str | None = None) -> str:
        path = f'{self.prefix}/{collection}'
        if doc_id is not None:
            _check_doc_id(doc_id)
            path = f'{path}/{doc_id}.json'
        return f'{self.API_BASE}/repos/{self.owner}/{self.repo}/contents/{path}'

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f'GitHub {method} {url} failed: {e}')
            raise StoreError(f'GitHub request failed: {e}') from e

    def _read(self, collection, doc_id):
        response = self._request('GET', self._url(collection, doc_id), params={'ref': self.branch})
        if response.status_code == 404:
            return None, None
        if not response.ok:
            raise StoreError(f'GitHub API error {response.status_code}: {response.text}')
        payload = response.json()
        content = json.loads(base64.b64decode(payload['content']).decode())
        return content, payload['sha']

    def _put(self, collection, doc_id, data, sha):
        body = {
            'message': f'Update {collection}/{doc_id}',
            'content': base64.b64encode(json.dumps(data, indent=2).encode()).decode(),
            'branch': self.branch,
        }
        if sha:
            body['sha'] = sha
        return self._request('PUT', self._url(collection, doc_id), json=body)

    def _write(self, collection, doc_id, data, expected_version):
        if expected_version is not ANY_VERSION:
            response = self._put(collection, doc_id, data, expected_version)
            if response.status_code in (409, 422):
                raise ConcurrencyConflict(f'{collection}/{doc_id} changed since it was read')
            if not response.ok:
                raise StoreError(f'GitHub API error {response.status_code}: {response.text}')
            return response.json()['content']['sha']

        # Unconditional write: refresh the sha and retry on conflict
        for attempt in range(self.max_retries):
            _current, sha = self._read(collection, doc_id)
            response = self._put(collection, doc_id, data, sha)
            if response.ok:
                return response.json()['content']['sha']
            if response.status_code == 409 and attempt < self.max_retries - 1:
                logger.warning(
                    f'Conflict writing {collection}/{doc_id}, retrying ({attempt + 1}/{self.max_retries})'
                )
                time.sleep(0.5 * (attempt + 1))
                continue
            raise StoreError(f'GitHub API error {response.status_code}: {response.text}')
        raise StoreError(f'Failed to write {collection}/{doc_id} after {self.max_retries} attempts')

    def _remove(self, collection, doc_id):
        _current, sha = self._read(collection, doc_id)
        if sha is None:
            return
        response = self._request(
            'DELETE',
            self._url(collection, doc_id),
            json={'message': f'Delete {collection}/{doc_id}', 'sha': sha, 'branch': self.branch},
        )
        if not response.ok:
            raise StoreError(f'GitHub API error {response.status_code}: {response.text}')

    def _ids(self, collection):
        response = self._request('GET', self._url(collection), params={'ref': self.branch})
        if response.status_code == 404:
            return []
        if not response.ok:
            raise StoreError(f'GitHub API error {response.status_code}: {response.text}')
        return [
            item['name'][: -len('.json')]
            for item in response.json()
            if item.get('type') == 'file' and item['name'].endswith('.json')
        ]


def open_store(data_dir: Path | str | None = None) -> DocumentStore:
    """
    Open the configured store.

    Uses the GitHub repository when GITHUB_TOKEN, owner and repo are set,
    otherwise the JSON file store at data_dir (default $APL_DATA_DIR).
    """
    if data_dir is None:
        github = get_github_settings()
        if github['token'] and github['owner'] and github['repo']:
            return GitHubContentsStore(
                owner=github['owner'],
                repo=github['repo'],
                token=github['token'],
                branch=github['branch'] or 'main',
            )
        data_dir = get_data_dir()
    return JsonFileStore(data_dir)
