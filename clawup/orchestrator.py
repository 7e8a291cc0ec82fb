"""Sequential bootstrap runner with per-step required/optional failure policy."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from loguru import logger

from .errors import OptionalStepWarning, RequiredStepError, StepNotApplicable
from .hosts import Host

log = logger


class StepTag(str, enum.Enum):
    REQUIRED = 'required'
    OPTIONAL = 'optional'


class StepStatus(str, enum.Enum):
    COMPLETED = 'completed'
    SATISFIED = 'satisfied'
    NOT_APPLICABLE = 'not_applicable'
    WARNING = 'warning'
    FAILED = 'failed'


@dataclass
class StepContext:
    """What checks and actions get to see: the target host and the config."""

    host: Host
    cfg: Any = None
    server: Any = None


@dataclass
class Step:
    """One unit of remote configuration.

    ``check`` returns True when the step's effect is already present; a
    step without a check always runs its action.
    """

    name: str
    tag: StepTag
    action: Callable[[StepContext], Any]
    check: Optional[Callable[[StepContext], bool]] = None
    description: str = ''
    interactive: bool = False

    @property
    def required(self) -> bool:
        return self.tag == StepTag.REQUIRED


def handoff_step(
    name: str,
    action: Callable[[StepContext], Any],
    *,
    description: str = '',
    check: Optional[Callable[[StepContext], bool]] = None,
) -> Step:
    """Step that gives the terminal to an interactive program.

    The human may cancel the program, so a non-zero exit only warns.
    """
    return Step(
        name=name,
        tag=StepTag.OPTIONAL,
        action=action,
        check=check,
        description=description,
        interactive=True,
    )


@dataclass
class StepOutcome:
    name: str
    status: StepStatus
    detail: str = ''


@dataclass
class Report:
    target: str = ''
    outcomes: list[StepOutcome] = field(default_factory=list)
    warnings: list[OptionalStepWarning] = field(default_factory=list)
    failed_step: Optional[str] = None
    log_path: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failed_step is None

    def names(self, *statuses: StepStatus) -> list[str]:
        return [o.name for o in self.outcomes if o.status in statuses]

    @property
    def completed(self) -> list[str]:
        return self.names(StepStatus.COMPLETED)

    @property
    def skipped(self) -> list[str]:
        return self.names(StepStatus.SATISFIED, StepStatus.NOT_APPLICABLE)

    def render(self) -> str:
        lines = [f'Bootstrap report for {self.target or "target"}']
        for o in self.outcomes:
            lines.append(_outcome_line(o))
        if not self.ok:
            lines.append('')
            lines.append(f'Aborted at required step: {self.failed_step}')
            if self.log_path:
                lines.append(f'Full execution log: {self.log_path}')
            return '\n'.join(lines)
        lines.append('')
        lines.append(
            f'completed={len(self.completed)} '
            f'already_satisfied={len(self.names(StepStatus.SATISFIED))} '
            f'not_applicable={len(self.names(StepStatus.NOT_APPLICABLE))} '
            f'warnings={len(self.warnings)}'
        )
        if self.warnings:
            lines.append('Warnings:')
            for w in self.warnings:
                lines.append(f'  - {w.step}: {w.cause}')
        if self.log_path:
            lines.append(f'Execution log: {self.log_path}')
        return '\n'.join(lines)


_ICONS = {
    StepStatus.COMPLETED: '✅',
    StepStatus.SATISFIED: '✅',
    StepStatus.NOT_APPLICABLE: '➖',
    StepStatus.WARNING: '⚠️',
    StepStatus.FAILED: '❌',
}


def _outcome_line(o: StepOutcome) -> str:
    label = {
        StepStatus.SATISFIED: 'already satisfied',
        StepStatus.NOT_APPLICABLE: 'not applicable',
    }.get(o.status, o.status.value)
    suffix = f' ({o.detail})' if o.detail else ''
    return f'{_ICONS[o.status]} {o.name} - {label}{suffix}'


def _first_line(ex: BaseException) -> str:
    text = str(ex).strip()
    return text.splitlines()[0] if text else type(ex).__name__


class BootstrapOrchestrator:
    """Run steps one after another against a single target.

    There is no checkpointing: re-running the whole list is safe because
    every step checks remote state before acting.
    """

    def __init__(
        self,
        ctx: StepContext,
        *,
        log_path: Optional[str] = None,
        progress: Optional[Callable[[str], None]] = print,
    ):
        self.ctx = ctx
        self.log_path = log_path
        self.progress = progress

    def _say(self, text: str) -> None:
        if self.progress is not None:
            self.progress(text)

    def run(self, server: Any, steps: list[Step]) -> Report:
        self.ctx.server = server
        target = self.ctx.host.describe()
        report = Report(target=target, log_path=self.log_path)
        total = len(steps)
        log.info('Starting bootstrap of {} ({} steps)', target, total)
        for idx, step in enumerate(steps, start=1):
            slog = log.bind(step=step.name, tag=step.tag.value)
            label = f'[{idx}/{total}] {step.description or step.name}'
            try:
                if step.check is not None and step.check(self.ctx):
                    slog.info('Step {} already satisfied', step.name)
                    report.outcomes.append(
                        StepOutcome(step.name, StepStatus.SATISFIED)
                    )
                    self._say(f'  {label}... already satisfied')
                    continue
                if step.interactive:
                    self._say('')
                    self._say(f'── {step.description or step.name} ──')
                    self._say('  Handing the terminal to the program; follow its prompts.')
                slog.info('Running step {} ({})', step.name, step.tag.value)
                step.action(self.ctx)
            except StepNotApplicable as ex:
                slog.info('Step {} not applicable: {}', step.name, ex)
                report.outcomes.append(
                    StepOutcome(step.name, StepStatus.NOT_APPLICABLE, str(ex))
                )
                self._say(f'  {label}... skipped ({ex})')
                continue
            except Exception as ex:
                if step.required:
                    slog.error('Required step {} failed: {}', step.name, ex)
                    report.outcomes.append(
                        StepOutcome(step.name, StepStatus.FAILED, _first_line(ex))
                    )
                    report.failed_step = step.name
                    self._say(f'  {label}... failed')
                    err = RequiredStepError(step.name, ex)
                    err.report = report
                    raise err from ex
                warning = OptionalStepWarning(step.name, _first_line(ex))
                slog.warning('Optional step {} failed: {}', step.name, ex)
                report.warnings.append(warning)
                report.outcomes.append(
                    StepOutcome(step.name, StepStatus.WARNING, _first_line(ex))
                )
                self._say(f'  {label}... failed (continuing)')
                continue
            slog.info('Step {} completed', step.name)
            report.outcomes.append(StepOutcome(step.name, StepStatus.COMPLETED))
            self._say(f'  {label}... done')
        log.info(
            'Bootstrap finished: completed={} skipped={} warnings={}',
            len(report.completed),
            len(report.skipped),
            len(report.warnings),
        )
        return report
