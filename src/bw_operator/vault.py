"""Bitwarden vault access through the bw CLI.

This module provides the BitwardenSession class, which keeps an unlocked
bw session between reconciliations and fetches vault items by path.
"""

import json
import os
import shutil
import subprocess
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from icecream import ic

from bw_operator import console
from bw_operator.config import OperatorConfig
from bw_operator.exceptions import BinaryNotFoundError, VaultError

# Error message constants
_ERR_BW_NOT_FOUND = "bw binary '{binary}' not found; please install the Bitwarden CLI and ensure it's on PATH"
_ERR_BW_FAILED = "bw {command} failed (exit code {code}){details}"
_ERR_BW_TIMEOUT = "bw {command} did not finish within {timeout} seconds"


def split_item_path(path: str) -> tuple[str | None, str]:
    """Split a vault item path into folder and item name.

    The last segment is the item name; everything before it is the folder
    name, so nested folders such as 'team/prod/db' resolve to folder
    'team/prod' and item 'db'.

    Args:
        path: The item path (e.g. 'homelab/argo-minio' or 'argo-minio').

    Returns:
        A (folder, name) tuple; folder is None when the path has no '/'.

    Raises:
        ValueError: If the path or one of its parts is empty.

    """
    path = path.strip()
    if not path:
        raise ValueError("Vault item path cannot be empty")

    if "/" not in path:
        return None, path

    folder, name = path.rsplit("/", 1)
    if not folder or not name:
        raise ValueError(f"Invalid vault item path: '{path}'")
    return folder, name


def item_fields(item: dict[str, Any]) -> dict[str, str]:
    """Flatten a bw item into a string-keyed mapping.

    Login credentials become 'username' and 'password'; custom fields are
    added by name and take precedence over the login values. Fields
    without a value (e.g. linked fields) are skipped.

    Args:
        item: The item as returned by ``bw list items``.

    Returns:
        Mapping of key to value.

    """
    values: dict[str, str] = {}

    login = item.get("login") or {}
    for key in ("username", "password"):
        if login.get(key) is not None:
            values[key] = str(login[key])

    for custom in item.get("fields") or []:
        name = custom.get("name")
        value = custom.get("value")
        if name and value is not None:
            values[name] = str(value)

    return values


class BitwardenSession:
    """Lazily unlocked, reusable bw session.

    The session key is created on the first fetch and reused afterwards.
    Every fetch leases its own copy of the key. A reset only clears the
    cached key, and the following unlock waits until the leases on the
    old key are returned, so a reset issued by one reconciliation never
    breaks a fetch already running in another one.

    Attributes:
        binary: Name or path of the bw binary.
        timeout: Seconds a single bw invocation may take.

    """

    def __init__(self, config: OperatorConfig) -> None:
        """Initialize the session from the operator configuration.

        Args:
            config: Operator configuration with the Bitwarden settings.

        """
        self.binary: str = config.bw_binary
        self.timeout: float = config.bw_timeout
        self._server_url: str | None = config.server_url
        self._client_id: str | None = config.client_id
        self._client_secret: str | None = config.client_secret
        self._password: str | None = config.password
        self._cond = threading.Condition()
        self._session_key: str | None = None
        # Fetches currently running with _session_key
        self._fetches = 0

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return (
            f"BitwardenSession(binary={self.binary!r}, server_url={self._server_url!r}, "
            f"unlocked={self.is_unlocked})"
        )

    @property
    def is_unlocked(self) -> bool:
        """Whether a session key is currently cached."""
        with self._cond:
            return self._session_key is not None

    def _run(self, args: list[str], *, session: str | None = None, env: dict[str, str] | None = None) -> str:
        """Run a bw command and return its stdout.

        Args:
            args: Arguments passed to bw.
            session: Session key exported as BW_SESSION.
            env: Extra environment variables for the command.

        Returns:
            The command's standard output.

        Raises:
            BinaryNotFoundError: If the bw binary cannot be found.
            VaultError: If the command fails or times out.

        """
        binary = shutil.which(self.binary)
        if binary is None:
            raise BinaryNotFoundError(_ERR_BW_NOT_FOUND.format(binary=self.binary))

        cmd_env = os.environ.copy()
        if env:
            cmd_env.update(env)
        if session is not None:
            cmd_env["BW_SESSION"] = session

        cmd = [binary, *args, "--nointeraction"]
        # Only the command name is traced, arguments may carry item names
        ic(args[0])

        try:
            result = subprocess.run(
                cmd,
                env=cmd_env,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout,
            )
        except subprocess.CalledProcessError as err:
            stderr_msg = err.stderr.strip() if err.stderr else ""
            details = f" - {stderr_msg}" if stderr_msg else ""
            raise VaultError(_ERR_BW_FAILED.format(command=args[0], code=err.returncode, details=details)) from err
        except subprocess.TimeoutExpired as err:
            raise VaultError(_ERR_BW_TIMEOUT.format(command=args[0], timeout=self.timeout)) from err

        return result.stdout

    def _run_json(self, args: list[str], *, session: str | None = None) -> Any:
        """Run a bw command and decode its JSON output.

        Raises:
            VaultError: If the command fails or prints something other than JSON.

        """
        output = self._run(args, session=session)
        try:
            return json.loads(output)
        except json.JSONDecodeError as err:
            raise VaultError(f"bw {args[0]} returned invalid JSON: {err}") from err

    def _login(self) -> str:
        """Log in if needed and unlock the vault.

        Returns:
            A fresh session key.

        Raises:
            VaultError: If credentials are missing or bw rejects them.

        """
        status = self._run_json(["status"])
        ic(status.get("status"))

        if status.get("status") == "unauthenticated":
            if self._server_url and status.get("serverUrl") != self._server_url:
                console.step(f"Pointing bw at {console.highlight(self._server_url)}")
                self._run(["config", "server", self._server_url])

            if not self._client_id or not self._client_secret:
                raise VaultError("bw is not logged in and no API client id/secret is configured")

            console.action("Logging in to Bitwarden")
            self._run(
                ["login", "--apikey"],
                env={"BW_CLIENTID": self._client_id, "BW_CLIENTSECRET": self._client_secret},
            )

        if not self._password:
            raise VaultError("No master password is configured to unlock the vault")

        console.action("Unlocking Bitwarden vault")
        session_key = self._run(
            ["unlock", "--passwordenv", "BW_PASSWORD", "--raw"],
            env={"BW_PASSWORD": self._password},
        ).strip()
        if not session_key:
            raise VaultError("bw unlock did not return a session key")

        self._run(["sync"], session=session_key)
        console.success("Bitwarden vault unlocked")
        return session_key

    @contextmanager
    def _lease(self) -> Iterator[str]:
        """Hold a session key for the duration of one fetch.

        ``bw unlock`` invalidates every key handed out before it, so a new
        unlock waits until no fetch is using the previous key.

        Yields:
            The session key to export as BW_SESSION.

        """
        with self._cond:
            while self._session_key is None:
                if self._fetches == 0:
                    self._session_key = self._login()
                else:
                    self._cond.wait()
            self._fetches += 1
            session = self._session_key
        try:
            yield session
        finally:
            with self._cond:
                self._fetches -= 1
                self._cond.notify_all()

    def _folder_id(self, folder: str, session: str) -> str:
        """Resolve a folder name to its id.

        Raises:
            VaultError: If no folder or more than one folder has that name.

        """
        folders = self._run_json(["list", "folders", "--search", folder], session=session)
        matches = [f for f in folders if f.get("name") == folder]
        if not matches:
            raise VaultError(f"Vault folder '{folder}' not found")
        if len(matches) > 1:
            raise VaultError(f"Vault folder name '{folder}' is ambiguous ({len(matches)} matches)")
        return str(matches[0]["id"])

    def fetch_item(self, path: str) -> dict[str, str]:
        """Fetch a vault item by path.

        Args:
            path: The item path ('folder/item' or 'item').

        Returns:
            The item's values as a string-keyed mapping.

        Raises:
            VaultError: If the vault cannot be unlocked, the item does not
                exist, or the item name is ambiguous.

        """
        try:
            folder, name = split_item_path(path)
        except ValueError as err:
            raise VaultError(str(err)) from err

        args = ["list", "items", "--search", name]
        with self._lease() as session:
            if folder is not None:
                args.extend(["--folderid", self._folder_id(folder, session)])
            items = self._run_json(args, session=session)

        matches = [item for item in items if item.get("name") == name]
        if not matches:
            raise VaultError(f"Vault item '{path}' not found")
        if len(matches) > 1:
            raise VaultError(f"Vault item '{path}' is ambiguous ({len(matches)} matches)")

        values = item_fields(matches[0])
        ic(sorted(values))
        return values

    def reset(self) -> None:
        """Drop the cached session so the next fetch unlocks the vault again."""
        with self._cond:
            self._session_key = None
