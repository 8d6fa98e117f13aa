from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from ..config import EngineConfig, SolverConfig
from ..display import (
    format_amount,
    format_cooldown,
    format_duration,
    format_error,
    format_penalty,
    format_result,
    format_stats,
    stats_summary,
)
from ..errors import FatalEngineError
from ..interfaces import Control, EventSink, InscriptionClient, Provider
from ..locks import acquire_process_lock
from ..logs import RuntimeLogger, null_logger
from ..models import Challenge, InscriptionRequest, short_id
from ..outcomes import (
    TARGET_TAKEN_CODE,
    ChallengeError,
    Fatal,
    InscriptionOutcome,
    RateLimited,
    ServerNotice,
    Success,
    TargetTaken,
    TransportError,
    UnhandledServerError,
)
from ..paths import RuntimePaths
from ..session import SessionManager
from ..solver import ChallengeSolver, Sleeper, SolveCancelled, SolverError
from ..state import EngineState, StateStore
from .stop import StopSignal


class EnginePhase(str, Enum):
    STARTING = "starting"
    IDLE = "idle"
    PAUSED = "paused"
    SUBMITTING = "submitting"
    CHALLENGE_RETRY = "challenge_retry"
    COOLDOWN = "cooldown"
    BACKOFF = "backoff"
    TERMINATED = "terminated"


class CycleFailed(RuntimeError):
    """A submission cycle ended without a usable response; handled by backoff."""


class Backoff:
    def __init__(self, initial_s: float, maximum_s: float) -> None:
        self.initial_s = float(initial_s)
        self.maximum_s = max(float(initial_s), float(maximum_s))
        self.current_s = self.initial_s

    def next_delay(self) -> float:
        delay = self.current_s
        self.current_s = min(self.current_s * 2, self.maximum_s)
        return delay

    def reset(self) -> None:
        self.current_s = self.initial_s


def compare_versions(left: str, right: str) -> int:
    """Compare dotted versions on their first three numeric parts."""

    def parts(value: str) -> list[int]:
        out: list[int] = []
        for chunk in value.strip().lstrip("vV").split(".")[:3]:
            digits = ""
            for char in chunk:
                if not char.isdigit():
                    break
                digits += char
            out.append(int(digits) if digits else 0)
        while len(out) < 3:
            out.append(0)
        return out

    a, b = parts(left), parts(right)
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


class InscriptionEngine:
    """Long-running solve-and-submit loop for one target.

    Owns the process lock, the server session and the persisted state for the
    runtime home in `paths`. `run()` returns on stop and raises
    `FatalEngineError` (or `AlreadyRunningError` from the lock) otherwise.
    """

    def __init__(
        self,
        *,
        client: InscriptionClient,
        provider: Provider,
        paths: RuntimePaths,
        target_id: int,
        settings: EngineConfig | None = None,
        solver_settings: SolverConfig | None = None,
        control: Control | None = None,
        emit: EventSink | None = None,
        stop: StopSignal | None = None,
        sleep: Sleeper | None = None,
        clock: Callable[[], datetime] | None = None,
        logger: RuntimeLogger | None = None,
        write: Callable[[str], None] | None = None,
    ) -> None:
        self.client = client
        self.provider = provider
        self.paths = paths
        self.target_id = int(target_id)
        self.settings = settings or EngineConfig()
        self.control = control
        self.stop = stop or StopSignal()
        self.logger = logger or null_logger()
        self.phase = EnginePhase.STARTING

        self._sink = emit
        self._sleeper = sleep or self.stop.wait
        self._clock = clock or (lambda: datetime.now(tz=timezone.utc))
        self._write = write or print

        self.store = StateStore(paths.state_json)
        self.state: EngineState = self.store.load()

        solver_settings = solver_settings or SolverConfig()
        self.solver = ChallengeSolver(
            provider,
            sleep=self.sleep,
            attempts=solver_settings.attempts,
            retry_delay_s=solver_settings.retry_delay_s,
            emit=self.emit,
            write=self._write,
            logger=self.logger,
        )
        self.sessions = SessionManager(
            client,
            state=self.state,
            store=self.store,
            emit=self.emit,
            write=self._write,
            logger=self.logger,
        )
        self._announced_versions: set[str] = set()
        self._rules_key: tuple[str, str] | None = None

    # ── plumbing ──

    def emit(self, kind: str, message: str, data: Any = None) -> None:
        if self._sink is None:
            return
        try:
            self._sink(kind, message, data)
        except Exception:  # noqa: BLE001
            return

    async def sleep(self, seconds: float) -> bool:
        """Every engine wait goes through here. False means stop was requested."""

        if self.stop.is_set():
            return False
        return await self._sleeper(max(0.0, float(seconds)))

    def _print(self, *lines: str) -> None:
        for line in lines:
            try:
                self._write(line)
            except Exception:  # noqa: BLE001
                return

    def _save_state(self) -> None:
        try:
            self.store.save(self.state)
        except OSError as exc:
            # One lost write must not stop mining.
            self.logger.warn("state save failed", path=self.store.path, error=exc)

    # ── lifecycle ──

    async def run(self) -> None:
        self.phase = EnginePhase.STARTING
        lock = acquire_process_lock(self.paths.lock_file)
        try:
            await self._run_with_session()
        except FatalEngineError as exc:
            self._print("", *exc.remediation.splitlines())
            self.emit("error", f"Fatal: {exc.code}", {"code": exc.code, "message": exc.message})
            self.logger.error("engine stopped on fatal error", code=exc.code, error=exc.message)
            raise
        finally:
            self._finish()
            lock.release()
            self.phase = EnginePhase.TERMINATED

    async def _run_with_session(self) -> None:
        try:
            await self.sessions.start(self.target_id)
            self._check_notice(self.sessions.last_notice)
            self.logger.info(
                "inscription started",
                target=self.target_id,
                backend=getattr(self.provider, "name", type(self.provider).__name__),
            )
            if not await self._resume_cooldown():
                return
            await self._loop()
        finally:
            await self.sessions.end()

    def _finish(self) -> None:
        self._print(*format_stats(self.state))
        self.emit(
            "stats",
            stats_summary(self.state),
            {
                "total_submissions": self.state.total_submissions,
                "total_reward": self.state.total_reward,
                "total_hits": self.state.total_hits,
                "challenges_passed": self.state.challenges_passed,
                "challenges_failed": self.state.challenges_failed,
            },
        )

    async def _resume_cooldown(self) -> bool:
        elapsed = self.state.seconds_since_submit(now=self._clock())
        cooldown = self.settings.cooldown_s
        if elapsed is None or elapsed >= cooldown:
            return True
        remaining = min(cooldown, cooldown - elapsed)
        self._print(format_cooldown(remaining))
        self.emit("cooldown", f"Resuming cooldown: {format_duration(remaining)} remaining", {"seconds": remaining})
        self.phase = EnginePhase.COOLDOWN
        return await self.sleep(remaining)

    async def _loop(self) -> None:
        backoff = Backoff(self.settings.backoff_initial_s, self.settings.backoff_max_s)
        while True:
            self.phase = EnginePhase.IDLE
            if self.stop.is_set():
                return
            if not await self._wait_while_paused():
                return
            self._adopt_target()

            self.phase = EnginePhase.SUBMITTING
            try:
                outcome = await self._submit_cycle()
            except SolveCancelled:
                return
            except CycleFailed as exc:
                if self.stop.is_set():
                    return
                self._report_error(str(exc))
                if not await self._back_off(backoff):
                    return
                continue

            if isinstance(outcome, TransportError):
                if self.stop.is_set():
                    return
                self._report_error(outcome.message)
                if not await self._back_off(backoff):
                    return
                continue

            if isinstance(outcome, Fatal):
                raise FatalEngineError.from_code(outcome.code, outcome.message, notice=outcome.notice)

            if isinstance(outcome, TargetTaken):
                raise FatalEngineError(TARGET_TAKEN_CODE, f"target #{self.target_id} is taken")

            if isinstance(outcome, UnhandledServerError):
                backoff.reset()
                self.logger.warn("unhandled server error, retrying", error=outcome.code, detail=outcome.message)
                self.emit("error", f"Server: {outcome.code} - {outcome.message}", {"code": outcome.code})
                if not await self._back_off(backoff):
                    return
                continue

            backoff.reset()

            if isinstance(outcome, RateLimited):
                if not await self._wait_rate_limit(outcome):
                    return
                continue

            if isinstance(outcome, Success):
                if not await self._handle_success(outcome):
                    return
                continue

            # ChallengeError never leaves _submit_cycle.
            raise AssertionError(f"unexpected outcome {outcome!r}")

    async def _wait_while_paused(self) -> bool:
        if self.control is None or not self.control.is_paused():
            return True
        self.phase = EnginePhase.PAUSED
        self.emit("control", "Mining paused")
        self.logger.info("mining paused")
        while self.control.is_paused():
            if not await self.sleep(self.settings.pause_poll_s):
                return False
        self.emit("control", "Mining resumed")
        self.logger.info("mining resumed")
        return True

    def _adopt_target(self) -> None:
        if self.control is None:
            return
        new_target = int(self.control.current_target())
        if new_target == self.target_id:
            return
        self.emit(
            "control",
            f"Target switched: #{self.target_id} -> #{new_target}",
            {"from": self.target_id, "to": new_target},
        )
        self.logger.info("target switched", old=self.target_id, new=new_target)
        self.target_id = new_target

    async def _back_off(self, backoff: Backoff) -> bool:
        delay = backoff.next_delay()
        self.phase = EnginePhase.BACKOFF
        self.logger.info("retrying after backoff", delay=f"{delay:g}s")
        return await self.sleep(delay)

    def _report_error(self, message: str) -> None:
        self._print(format_error(message))
        self.emit("error", message)
        self.logger.error("inscription failed", error=message)

    # ── one cycle ──

    async def _submit(self, request: InscriptionRequest) -> InscriptionOutcome:
        try:
            return await self.client.submit(request)
        except Exception as exc:  # noqa: BLE001
            return TransportError(exc)

    async def _answer(self, challenge: Challenge) -> str:
        try:
            return await self.solver.solve(challenge)
        except SolveCancelled:
            raise
        except SolverError as exc:
            raise CycleFailed(f"answer backend error: {exc}") from exc

    async def _submit_cycle(self) -> InscriptionOutcome:
        request = InscriptionRequest(target_id=self.target_id, session_id=self.sessions.session.id)

        cached = self.state.last_challenge
        if cached is not None:
            self.logger.info("using cached challenge", id=short_id(cached.id))
            request = request.with_answer(cached, await self._answer(cached))
        else:
            self.logger.info("no cached challenge, requesting new one")

        outcome = await self._submit(request)

        attempts = 0
        while isinstance(outcome, ChallengeError) and attempts < self.settings.max_challenge_retries:
            attempts += 1
            challenge = outcome.new_challenge
            if challenge is None:
                self.state.last_challenge = None
                self._save_state()
                raise CycleFailed(f"server returned {outcome.kind.value} without a new challenge")

            self.phase = EnginePhase.CHALLENGE_RETRY
            if outcome.is_penalty:
                self.state.record_challenge_failure()
                self._save_state()
                self._print(format_error(f"Challenge failed: {outcome.message}"), *format_penalty(outcome.hint))
                self.emit("penalty", f"Challenge failed: {outcome.message}", {"hint": outcome.hint})
            else:
                self.logger.info(
                    "challenge retry",
                    error=outcome.kind.value,
                    detail=outcome.message,
                    attempt=attempts,
                    new_challenge=short_id(challenge.id),
                )
                self.emit("challenge", f"Challenge retry ({outcome.kind.value}): {outcome.message}")

            request = request.with_answer(challenge, await self._answer(challenge))
            outcome = await self._submit(request)

        if isinstance(outcome, ChallengeError):
            # Next cycle starts from the newest challenge instead of a spent one.
            self.state.last_challenge = outcome.new_challenge
            self._save_state()
            if outcome.new_challenge is not None:
                self.logger.info(
                    "retries exhausted, saved latest challenge for next cycle",
                    id=short_id(outcome.new_challenge.id),
                )
            raise CycleFailed(f"failed to pass challenge after {self.settings.max_challenge_retries} retries")

        return outcome

    async def _wait_rate_limit(self, outcome: RateLimited) -> bool:
        wait = outcome.retry_after_seconds if outcome.retry_after_seconds > 0 else self.settings.rate_limit_default_s
        if outcome.is_daily_cap:
            message = f"Daily limit reached. Waiting {int(wait) // 60}m..."
        else:
            message = f"Cooldown active. Waiting {int(wait)}s..."
        self._print(f"[{self._clock().astimezone().strftime('%H:%M:%S')}] {message}")
        self.emit("cooldown", message, {"seconds": wait, "daily_cap": outcome.is_daily_cap})
        self.phase = EnginePhase.COOLDOWN
        return await self.sleep(wait)

    async def _handle_success(self, outcome: Success) -> bool:
        self._print(*format_result(outcome, self.state.last_trust_score))
        self.emit(
            "inscription",
            f"Reward: {format_amount(outcome.reward)} | Trust: {outcome.trust_score} | Remaining: {outcome.remaining_count}",
            {
                "reward": outcome.reward,
                "trust_score": outcome.trust_score,
                "remaining": outcome.remaining_count,
                "hit": outcome.hit,
            },
        )
        if outcome.hit:
            won = outcome.target_id or self.target_id
            self.emit("hit", f"#{won} is yours!", {"target_id": won, "image": outcome.image})
        if outcome.ip_multiplier > 1:
            self.emit(
                "penalty",
                f"IP penalty: {outcome.ip_multiplier}x multiplier, {outcome.agents_on_ip} agents on IP",
                {"ip_multiplier": outcome.ip_multiplier, "agents_on_ip": outcome.agents_on_ip},
            )

        self.state.record_success(outcome, now=self._clock())
        self._save_state()
        self._check_notice(outcome.notice)

        cooldown = self.settings.cooldown_s
        self._print(format_cooldown(cooldown))
        self.emit("cooldown", f"Next inscription in {format_duration(cooldown)}", {"seconds": cooldown})
        self.phase = EnginePhase.COOLDOWN
        return await self.sleep(cooldown)

    # ── server notices ──

    def _check_notice(self, notice: ServerNotice) -> None:
        version = self.settings.client_version
        if version and version != "dev":
            if notice.min_client_version and compare_versions(version, notice.min_client_version) < 0:
                key = f"min:{notice.min_client_version}"
                if key not in self._announced_versions:
                    self._announced_versions.add(key)
                    lines = ["", f"WARNING: version {version} is below minimum required version {notice.min_client_version}"]
                    if notice.upgrade_url:
                        lines.append(f"Download: {notice.upgrade_url}")
                    self._print(*lines, "")
            if notice.latest_client_version and compare_versions(version, notice.latest_client_version) < 0:
                key = f"latest:{notice.latest_client_version}"
                if key not in self._announced_versions:
                    self._announced_versions.add(key)
                    self._print(f"New version available: {version} -> {notice.latest_client_version}")
                    if notice.upgrade_url:
                        self._print(f"Download: {notice.upgrade_url}", "")

        if not (notice.skill_version or notice.skill_doc_hash):
            return
        rules_key = (notice.skill_version, notice.skill_doc_hash)
        if self._rules_key is None:
            self._rules_key = rules_key
            return
        if rules_key == self._rules_key:
            return
        previous = self._rules_key
        self._rules_key = rules_key
        message = f"Service rules updated: {previous[0] or '?'} -> {notice.skill_version or '?'}"
        self._print("", message, "Update the client to pick up the new rules.", "")
        self.emit("control", message, {"skill_version": notice.skill_version, "skill_doc_hash": notice.skill_doc_hash})
