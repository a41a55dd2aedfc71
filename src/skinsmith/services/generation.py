"""End-to-end generation: resolve conflicts, build the patched tree, pack and install it.

Nothing inside the installation is touched until every conflict has a
resolution; the live archive is only replaced by the final atomic swap.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
import uuid
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from skinsmith.config import settings
from skinsmith.errors import (
    ArtifactNotFoundError,
    CorruptArtifactError,
    ErrorKind,
    KeyValuesSyntaxError,
    OperationCancelledError,
    PatchNotAppliedError,
    PipelineError,
    ReplaceFailedError,
)
from skinsmith.keyvalues.merge import MergeConflictError, merge_blocks
from skinsmith.keyvalues.patcher import (
    BlockPatch,
    PatchReport,
    apply_block_patches,
    find_config_file,
    read_document,
    write_document,
)
from skinsmith.schemas.conflict import ResolutionOutcome
from skinsmith.schemas.generation import GenerationRequest, GenerationResult, GenerationStatus
from skinsmith.schemas.install_log import InstallationLog, InstalledEntry
from skinsmith.schemas.mod import ModSource
from skinsmith.services.base_content import BaseContentProvider
from skinsmith.services.conflicts import ConflictEngine, ConflictResolver
from skinsmith.services.install_log_service import save_log
from skinsmith.services.payloads import check_affected_files, stage_payload, with_index_blocks
from skinsmith.services.priority_service import PriorityService
from skinsmith.services.progress import ProgressCallback, noop_progress
from skinsmith.utils.files import remove_tree
from skinsmith.utils.paths import normalize_relative, safe_relative
from skinsmith.vpk.recompiler import ArchiveRecompiler
from skinsmith.vpk.replacer import AtomicReplacer

logger = logging.getLogger(__name__)


class _Ownership:
    """Which mod wins each contested file and block, plus merged block texts."""

    def __init__(self, outcomes: list[ResolutionOutcome]) -> None:
        self.files: dict[str, str] = {}
        self.blocks: dict[str, str] = {}
        self.merged_blocks: dict[str, str] = {}
        for outcome in outcomes:
            for block_id, text in outcome.merged_blocks.items():
                self._add_merged(block_id, text)
            if outcome.winning_source is None:
                continue
            winner = outcome.winning_source.mod_id
            for path in outcome.resolved_files:
                self.files.setdefault(normalize_relative(path), winner)
            for key in outcome.resolved_keys:
                self.blocks.setdefault(key, winner)

    def _add_merged(self, block_id: str, text: str) -> None:
        # One block can be merged by several pairwise conflicts (a+b, a+c, b+c).
        earlier = self.merged_blocks.get(block_id)
        if earlier is None:
            self.merged_blocks[block_id] = text
            return
        try:
            self.merged_blocks[block_id] = merge_blocks(earlier, text)
        except (MergeConflictError, KeyValuesSyntaxError) as exc:
            logger.warning("Keeping the first merge of block %s: %s", block_id, exc)

    def owns_file(self, mod_id: str, path: str) -> bool:
        return self.files.get(normalize_relative(path), mod_id) == mod_id

    def owns_block(self, mod_id: str, block_id: str) -> bool:
        return self.blocks.get(block_id, mod_id) == mod_id


@contextmanager
def _os_errors_as(error: type[PipelineError], message: str) -> Iterator[None]:
    try:
        yield
    except OSError as exc:
        raise error(f"{message}: {exc}") from exc


def _check_cancelled(cancel_event: asyncio.Event | None, step: str) -> None:
    if cancel_event and cancel_event.is_set():
        raise OperationCancelledError(f"Generation cancelled before {step}")


def _copy_payload(
    source: ModSource, payload: Path, tree: Path, ownership: _Ownership
) -> list[str]:
    """Copy the files *source* ships from *payload* into *tree*.

    Contested files are only taken from the mod that won them.
    """
    copied: list[str] = []
    for rel in source.affected_files:
        if not ownership.owns_file(source.mod_id, rel):
            logger.info("Skipping %s from %s: resolved to another mod", rel, source.mod_name)
            continue
        safe = safe_relative(rel)
        if safe is None:
            raise PipelineError(f"Mod '{source.mod_name}' lists an unsafe file path: {rel!r}")
        src = payload.joinpath(*safe.parts)
        if not src.is_file():
            raise ArtifactNotFoundError(f"'{source.mod_name}' is missing payload file {rel}")
        dst = tree.joinpath(*safe.parts)
        with _os_errors_as(
            CorruptArtifactError, f"Cannot place {rel} from '{source.mod_name}' in the work tree"
        ):
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dst)
        copied.append(rel)
    return copied


def _collect_patches(
    sources: list[ModSource], ownership: _Ownership
) -> tuple[list[BlockPatch], dict[str, list[str]]]:
    """Build one patch per block id and remember which mods contributed it."""
    patches: list[BlockPatch] = []
    contributors: dict[str, list[str]] = defaultdict(list)
    for source in sources:
        for block_id, text in source.config_blocks.items():
            if block_id in ownership.merged_blocks:
                if block_id not in contributors:
                    patches.append(
                        BlockPatch(block_id, ownership.merged_blocks[block_id], source.owner_tag)
                    )
                contributors[block_id].append(source.mod_id)
                continue
            if not ownership.owns_block(source.mod_id, block_id):
                continue
            if block_id in contributors:
                # Same text from an earlier mod (differing text would be a conflict).
                contributors[block_id].append(source.mod_id)
                continue
            patches.append(BlockPatch(block_id, text, source.owner_tag))
            contributors[block_id].append(source.mod_id)
    return patches, contributors


class GenerationPipeline:
    def __init__(
        self,
        base_provider: BaseContentProvider,
        recompiler: ArchiveRecompiler,
        replacer: AtomicReplacer,
        *,
        priority_service: PriorityService | None = None,
        engine: ConflictEngine | None = None,
        resolver: ConflictResolver | None = None,
        work_root: Path | None = None,
    ) -> None:
        self._base = base_provider
        self._recompiler = recompiler
        self._replacer = replacer
        self._priorities = priority_service or PriorityService()
        self._engine = engine or ConflictEngine()
        self._resolver = resolver or ConflictResolver()
        self._work_root = work_root or settings.work_dir

    async def run(
        self,
        request: GenerationRequest,
        progress: ProgressCallback = noop_progress,
        cancel_event: asyncio.Event | None = None,
    ) -> GenerationResult:
        """Run the whole pipeline; failures are reported in the result, never raised."""
        start = time.perf_counter()
        try:
            result = await self._run(request, progress, cancel_event)
        except OperationCancelledError as exc:
            logger.info("Generation for %s cancelled: %s", request.target_path, exc.message)
            result = GenerationResult(
                status=GenerationStatus.CANCELLED, message=exc.message, error_kind=exc.kind
            )
        except PipelineError as exc:
            logger.error("Generation for %s failed (%s): %s", request.target_path, exc.kind, exc)
            result = GenerationResult(
                status=GenerationStatus.FAILED, message=exc.message, error_kind=exc.kind
            )
        result.elapsed_ms = int((time.perf_counter() - start) * 1000)
        progress("done", result.message, 100)
        return result

    async def _run(
        self,
        request: GenerationRequest,
        progress: ProgressCallback,
        cancel_event: asyncio.Event | None,
    ) -> GenerationResult:
        target = request.target_path
        ids = [m.mod_id for m in request.mods]
        if len(set(ids)) != len(ids):
            raise PipelineError("Each mod may only be listed once")
        for mod in request.mods:
            check_affected_files(mod)
        mods = [await asyncio.to_thread(with_index_blocks, m) for m in request.mods]

        progress("conflicts", f"Checking {len(ids)} mod(s) for conflicts...", 0)
        config = self._priorities.get_config(target)
        sources = self._priorities.apply_priorities(target, mods)
        conflicts = self._engine.detect(sources)
        batch = self._resolver.resolve_all(conflicts, config, request.decisions)
        if batch.pending:
            progress("conflicts", f"{len(batch.pending)} conflict(s) need a decision", 100)
            return GenerationResult(
                status=GenerationStatus.CONFLICTS,
                message=f"{len(batch.pending)} conflict(s) need a decision",
                error_kind=ErrorKind.conflict_unresolved,
                outcomes=batch.outcomes,
                pending_conflicts=batch.pending,
            )
        ownership = _Ownership(batch.outcomes)

        base = await self._base.get_base(progress, cancel_event)
        _check_cancelled(cancel_event, "copying the base tree")

        work_dir = self._work_root / f"build-{uuid.uuid4().hex[:8]}"
        tree = work_dir / "tree"
        try:
            progress("prepare", "Preparing work tree...", 35)
            with _os_errors_as(ArtifactNotFoundError, "Could not copy base content"):
                await asyncio.to_thread(shutil.copytree, base, tree)

            copied: dict[str, list[str]] = {}
            for index, source in enumerate(sources):
                if not source.affected_files:
                    copied[source.mod_id] = []
                    continue
                payload = await asyncio.to_thread(
                    stage_payload, source, work_dir / "payloads" / str(index)
                )
                copied[source.mod_id] = _copy_payload(source, payload, tree, ownership)
            _check_cancelled(cancel_event, "patching")

            progress("patch", "Patching item config...", 50)
            report, contributors = self._patch(tree, sources, ownership)
            _check_cancelled(cancel_event, "recompiling")

            progress("recompile", "Packing content archive...", 60)
            archive = await self._recompiler.recompile(
                tree, work_dir / "build", cancel_event=cancel_event
            )

            progress("install", "Installing archive...", 90)
            live = await self._replacer.replace(target, archive, cancel_event=cancel_event)

            self._record(target, sources, copied, report, contributors)
        finally:
            remove_tree(work_dir)

        message = f"Installed {len(sources)} mod(s)"
        if report.skipped:
            message += f"; {len(report.skipped)} block(s) skipped"
        logger.info("%s into %s", message, live)
        return GenerationResult(
            status=GenerationStatus.SUCCESS,
            message=message,
            archive_path=str(live),
            installed_mods=[s.mod_id for s in sources],
            applied_blocks=report.applied,
            skipped_blocks=report.skipped,
            outcomes=batch.outcomes,
        )

    def _patch(
        self, tree: Path, sources: list[ModSource], ownership: _Ownership
    ) -> tuple[PatchReport, dict[str, list[str]]]:
        patches, contributors = _collect_patches(sources, ownership)
        if not patches:
            return PatchReport(text=""), contributors
        config_file = find_config_file(tree)
        if config_file is None:
            raise ArtifactNotFoundError("Base content has no item config file to patch")

        with _os_errors_as(CorruptArtifactError, f"Cannot read {config_file.name}"):
            document = read_document(config_file)
        report = apply_block_patches(document, patches)
        for block_id, reason in report.skipped.items():
            logger.warning("Block %s not applied: %s", block_id, reason)
        if not report.applied:
            details = "; ".join(f"{k}: {v}" for k, v in report.skipped.items())
            raise PatchNotAppliedError(
                f"None of {len(patches)} block patch(es) applied ({details})"
            )
        with _os_errors_as(CorruptArtifactError, f"Cannot write {config_file.name}"):
            write_document(config_file, report.text)
        logger.info("Applied %d block patch(es) to %s", len(report.applied), config_file.name)
        return report, contributors

    @staticmethod
    def _record(
        target: str,
        sources: list[ModSource],
        copied: dict[str, list[str]],
        report: PatchReport,
        contributors: dict[str, list[str]],
    ) -> None:
        applied = set(report.applied)
        log = InstallationLog()
        for source in sources:
            blocks = [
                b for b, mods in contributors.items() if source.mod_id in mods and b in applied
            ]
            log.record(
                InstalledEntry(
                    mod_id=source.mod_id,
                    mod_name=source.mod_name,
                    blocks=blocks,
                    files=copied.get(source.mod_id, []),
                )
            )
        with _os_errors_as(
            ReplaceFailedError, "Archive installed but the installation log could not be saved"
        ):
            save_log(target, log)
