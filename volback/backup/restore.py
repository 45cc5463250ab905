"""
Volume restore - replaces a volume's contents from an archive.

The restore runs as a state machine. Destructive steps (stopping dependent
containers, removing the existing volume) only happen after the confirm
callback approves them:

    START -> EXISTS_CHECK -> EXISTING -> HAS_DEPENDENTS -> STOPPING -> REMOVING
                                      -> NO_DEPENDENTS  ------------> REMOVING
                          -> NOT_EXISTING ---------------------------> CREATING
    REMOVING -> CREATING -> EXTRACTING -> VERIFY -> RESTARTING -> DONE

Any state may end in FAILED; the confirmation states may end in CANCELLED.
Containers stopped by a session are restarted only after a successful
extraction, so they are never started on top of a broken volume.
"""

import enum
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from volback import db
from volback.models import RestoreHistory
from .runtime import EXTRACT, RuntimeOperationError

logger = logging.getLogger(__name__)


class ArchiveNotFound(Exception):
    """Raised when the selected archive file does not exist."""
    pass


class RestoreFailed(Exception):
    """Raised when a restore step fails."""

    def __init__(self, message: str, phase: str):
        super().__init__(message)
        self.phase = phase


class RestoreCancelled(Exception):
    """The operator declined a destructive step. Not a fault."""
    pass


class RestoreState(enum.Enum):
    START = 'start'
    EXISTS_CHECK = 'exists_check'
    EXISTING = 'existing'
    NOT_EXISTING = 'not_existing'
    HAS_DEPENDENTS = 'has_dependents'
    NO_DEPENDENTS = 'no_dependents'
    STOPPING = 'stopping'
    REMOVING = 'removing'
    CREATING = 'creating'
    EXTRACTING = 'extracting'
    VERIFY = 'verify'
    RESTARTING = 'restarting'
    DONE = 'done'
    CANCELLED = 'cancelled'
    FAILED = 'failed'


TERMINAL_STATES = frozenset({RestoreState.DONE, RestoreState.CANCELLED, RestoreState.FAILED})


@dataclass
class RestoreSession:
    """State of a single restore; never persisted beyond its history row."""

    volume_name: str
    archive_path: str
    dependents: List[str] = field(default_factory=list)
    volume_existed: bool = False
    stopped: List[str] = field(default_factory=list)
    restarted: List[str] = field(default_factory=list)
    state: RestoreState = RestoreState.START
    trail: List[RestoreState] = field(default_factory=lambda: [RestoreState.START])
    extract_exit_code: Optional[int] = None
    extract_output: str = ''
    error: Optional[Exception] = None
    logs: List[str] = field(default_factory=list)

    @property
    def done(self) -> bool:
        return self.state is RestoreState.DONE

    @property
    def cancelled(self) -> bool:
        return self.state is RestoreState.CANCELLED

    @property
    def failed(self) -> bool:
        return self.state is RestoreState.FAILED


class RestoreCoordinator:
    """
    Drives a restore session from START to a terminal state.

    Args:
        runtime: Runtime with volume/container operations and run_archiver()
        confirm: Callback asked before each destructive step; returns True to proceed
    """

    def __init__(self, runtime, confirm: Callable[[str], bool]):
        self.runtime = runtime
        self.confirm = confirm
        self._handlers = {
            RestoreState.START: self._start,
            RestoreState.EXISTS_CHECK: self._check_exists,
            RestoreState.EXISTING: self._find_dependents,
            RestoreState.NOT_EXISTING: self._skip_removal,
            RestoreState.HAS_DEPENDENTS: self._confirm_stop,
            RestoreState.NO_DEPENDENTS: self._confirm_remove,
            RestoreState.STOPPING: self._stop_dependents,
            RestoreState.REMOVING: self._remove_volume,
            RestoreState.CREATING: self._create_volume,
            RestoreState.EXTRACTING: self._extract,
            RestoreState.VERIFY: self._verify,
            RestoreState.RESTARTING: self._restart_dependents,
        }

    def restore(self, volume_name: str, archive_path: str) -> RestoreSession:
        """
        Restore a volume from an archive.

        Args:
            volume_name: Volume to replace
            archive_path: Path to the .tar.gz archive

        Returns:
            RestoreSession in DONE, CANCELLED or FAILED state
        """
        session = RestoreSession(volume_name=volume_name, archive_path=archive_path)
        self._log(session, f"Starting restore for volume '{volume_name}' from '{os.path.basename(archive_path)}'")

        while session.state not in TERMINAL_STATES:
            next_state = self._handlers[session.state](session)
            session.state = next_state
            session.trail.append(next_state)

        if session.done:
            self._log(session, f"Successfully restored volume '{volume_name}'")
        elif session.cancelled:
            self._log(session, "Restore cancelled by user.")
        else:
            self._log(session, f"Restore of volume '{volume_name}' failed: {session.error}", level=logging.ERROR)

        return session

    def _start(self, session: RestoreSession) -> RestoreState:
        if not os.path.isfile(session.archive_path):
            return self._fail(session, ArchiveNotFound(f"Backup file '{session.archive_path}' not found."))
        return RestoreState.EXISTS_CHECK

    def _check_exists(self, session: RestoreSession) -> RestoreState:
        try:
            exists = self.runtime.volume_exists(session.volume_name)
        except RuntimeOperationError as e:
            return self._fail(session, RestoreFailed(str(e), phase='exists_check'))

        if exists:
            self._log(session, f"Volume '{session.volume_name}' exists.")
            return RestoreState.EXISTING

        self._log(session, f"Volume '{session.volume_name}' does not exist. It will be created.")
        return RestoreState.NOT_EXISTING

    def _find_dependents(self, session: RestoreSession) -> RestoreState:
        session.volume_existed = True
        try:
            session.dependents = list(self.runtime.containers_using_volume(session.volume_name))
        except RuntimeOperationError as e:
            return self._fail(session, RestoreFailed(str(e), phase='existing'))

        if session.dependents:
            self._log(session, f"Containers using volume '{session.volume_name}': {', '.join(session.dependents)}")
            return RestoreState.HAS_DEPENDENTS
        return RestoreState.NO_DEPENDENTS

    def _skip_removal(self, session: RestoreSession) -> RestoreState:
        return RestoreState.CREATING

    def _confirm_stop(self, session: RestoreSession) -> RestoreState:
        prompt = (
            f"The following containers use volume '{session.volume_name}': "
            f"{', '.join(session.dependents)}. Stop these containers and remove the volume to restore?"
        )
        if not self.confirm(prompt):
            return self._cancel(session)
        return RestoreState.STOPPING

    def _confirm_remove(self, session: RestoreSession) -> RestoreState:
        prompt = f"Volume '{session.volume_name}' exists but is not currently used. Remove and recreate it?"
        if not self.confirm(prompt):
            return self._cancel(session)
        return RestoreState.REMOVING

    def _stop_dependents(self, session: RestoreSession) -> RestoreState:
        self._log(session, "Stopping containers...")
        for container in session.dependents:
            try:
                was_running = self.runtime.stop_container(container)
            except RuntimeOperationError as e:
                # Volume is still untouched: put back what this session stopped
                self._start_stopped(session)
                return self._fail(session, RestoreFailed(str(e), phase='stopping'))

            # Only containers stopped here are restarted later
            if not was_running:
                self._log(session, f"Container '{container}' is not running. It will stay stopped.")
                continue
            session.stopped.append(container)
            self._log(session, f"Stopped container '{container}'")
        return RestoreState.REMOVING

    def _remove_volume(self, session: RestoreSession) -> RestoreState:
        self._log(session, f"Removing existing volume '{session.volume_name}'...")
        try:
            self.runtime.remove_volume(session.volume_name)
        except RuntimeOperationError as e:
            return self._fail(session, RestoreFailed(str(e), phase='removing'))
        return RestoreState.CREATING

    def _create_volume(self, session: RestoreSession) -> RestoreState:
        self._log(session, f"Creating volume '{session.volume_name}'...")
        try:
            self.runtime.create_volume(session.volume_name)
        except RuntimeOperationError as e:
            return self._fail(session, RestoreFailed(str(e), phase='creating'))
        return RestoreState.EXTRACTING

    def _extract(self, session: RestoreSession) -> RestoreState:
        self._log(session, "Restoring data...")
        directory, filename = os.path.split(os.path.abspath(session.archive_path))
        try:
            result = self.runtime.run_archiver(EXTRACT, session.volume_name, directory, filename)
            session.extract_exit_code = result.exit_code
            session.extract_output = result.output
        except RuntimeOperationError as e:
            session.extract_exit_code = None
            session.extract_output = str(e)
        return RestoreState.VERIFY

    def _verify(self, session: RestoreSession) -> RestoreState:
        if session.extract_exit_code == 0:
            return RestoreState.RESTARTING

        if session.stopped:
            self._log(
                session,
                f"Containers left stopped: {', '.join(session.stopped)}",
                level=logging.WARNING
            )
        detail = session.extract_output.strip()
        message = f"Failed to restore volume '{session.volume_name}'"
        if session.extract_exit_code is not None:
            message += f" (extract exit code {session.extract_exit_code})"
        if detail:
            message += f": {detail}"
        return self._fail(session, RestoreFailed(message, phase='extracting'))

    def _restart_dependents(self, session: RestoreSession) -> RestoreState:
        if not session.stopped:
            return RestoreState.DONE

        self._log(session, "Restarting previously stopped containers...")
        errors = self._start_stopped(session)
        if errors:
            return self._fail(session, RestoreFailed('; '.join(errors), phase='restarting'))
        return RestoreState.DONE

    def _start_stopped(self, session: RestoreSession) -> List[str]:
        """Start every container this session stopped; returns error messages."""
        errors = []
        for container in session.stopped:
            try:
                self.runtime.start_container(container)
                session.restarted.append(container)
                self._log(session, f"Started container '{container}'")
            except RuntimeOperationError as e:
                errors.append(str(e))
                self._log(session, str(e), level=logging.ERROR)
        return errors

    def _fail(self, session: RestoreSession, error: Exception) -> RestoreState:
        session.error = error
        return RestoreState.FAILED

    def _cancel(self, session: RestoreSession) -> RestoreState:
        session.error = RestoreCancelled(f"Restore of volume '{session.volume_name}' cancelled by user")
        return RestoreState.CANCELLED

    def _log(self, session: RestoreSession, message: str, level: int = logging.INFO):
        timestamp = datetime.utcnow().strftime('%Y-%m-%d %H:%M:%S UTC')
        session.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)


def restore_volume(volume_name: str, archive_path: str, runtime, confirm: Callable[[str], bool]) -> RestoreSession:
    """
    Restore a volume and record the outcome as a RestoreHistory row.

    Args:
        volume_name: Volume to replace
        archive_path: Path to the archive
        runtime: Runtime with volume/container operations
        confirm: Confirmation callback for destructive steps

    Returns:
        The finished RestoreSession
    """
    started_at = datetime.utcnow()
    session = RestoreCoordinator(runtime, confirm).restore(volume_name, archive_path)

    record = RestoreHistory(
        volume_name=volume_name,
        archive_path=archive_path,
        final_state=session.state.value,
        stopped_containers=','.join(session.stopped) or None,
        started_at=started_at,
        completed_at=datetime.utcnow(),
        error_message=str(session.error) if session.failed else None,
        logs='\n'.join(session.logs)
    )
    db.session.add(record)
    db.session.commit()

    return session
