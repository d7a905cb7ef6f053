"""Pipeline controller — the central coordinator for an image build.

The ImageBuilder wires together the ArchiveInspector, DatasetLifecycleManager,
LayoutAdapter, ArtifactSerializer and ManifestEmitter, and walks a
BuildStateMachine through the linear pipeline:

    started -> dataset_created -> extracted -> layout_adapted -> serialized
        -> dataset_destroyed -> manifest_emitted -> reported

Any failure moves the run to ``failed`` and re-raises.  Nothing is retried.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date

from lximage.config import BuilderSettings
from lximage.core.archive_inspector import (
    ArchiveInspector,
    FileCommandDescriber,
    check_archive_path,
)
from lximage.core.commands import CommandRunner, SubprocessRunner
from lximage.core.dataset_manager import DatasetLifecycleManager, ZfsBackend
from lximage.core.extractor import TarExtractor
from lximage.core.layout_adapter import CrleGenerator, LayoutAdapter
from lximage.core.manifest_emitter import (
    BuiltinManifestTool,
    CreateManifestTool,
    ManifestEmitter,
    ManifestTool,
)
from lximage.core.serializer import ArtifactSerializer
from lximage.core.stage_machine import BuildStateMachine
from lximage.models.build import (
    BuildIdentity,
    BuildReport,
    BuildRequest,
    ImageArtifacts,
    ManifestParams,
)
from lximage.models.stages import BuildState

logger = logging.getLogger(__name__)


class ImageBuilder:
    """Runs one image build from request to artifacts.

    Parameters
    ----------
    datasets:
        Owner of the ephemeral dataset.
    inspector:
        Archive classifier.
    layout:
        LX layout adapter applied to the extracted root.
    serializer:
        Writes the compressed image stream.
    manifests:
        Writes the JSON manifest.
    os_tag:
        Operating-system tag recorded in the manifest.
    clock:
        Returns the build date.  Defaults to today's local date.
    """

    def __init__(
        self,
        datasets: DatasetLifecycleManager,
        inspector: ArchiveInspector,
        layout: LayoutAdapter,
        serializer: ArtifactSerializer,
        manifests: ManifestEmitter,
        *,
        os_tag: str = "linux",
        clock: Callable[[], date] | None = None,
    ) -> None:
        self.datasets = datasets
        self.inspector = inspector
        self.layout = layout
        self.serializer = serializer
        self.manifests = manifests
        self._os_tag = os_tag
        self._clock = clock

        # State machine of the most recent build, kept for post-mortem display.
        self.machine: BuildStateMachine | None = None

    @classmethod
    def from_settings(
        cls,
        settings: BuilderSettings | None = None,
        runner: CommandRunner | None = None,
    ) -> ImageBuilder:
        """Wire the production collaborators from configuration."""
        settings = settings or BuilderSettings()
        runner = runner or SubprocessRunner()

        datasets = DatasetLifecycleManager(
            ZfsBackend(runner, settings.zfs_bin),
            TarExtractor(runner, settings.tar_bin),
            pool=settings.zpool,
            snapshot_name=settings.snapshot_name,
            strip_components=settings.strip_components,
            cleanup_on_failure=settings.cleanup_on_failure,
        )
        tool: ManifestTool
        if settings.uses_builtin_manifest:
            tool = BuiltinManifestTool()
        else:
            tool = CreateManifestTool(runner, settings.manifest_tool)

        inspector = ArchiveInspector(
            FileCommandDescriber(runner, settings.file_bin)
            if settings.uses_file_inspector
            else None
        )

        return cls(
            datasets=datasets,
            inspector=inspector,
            layout=LayoutAdapter(CrleGenerator(runner, settings.crle_bin)),
            serializer=ArtifactSerializer(settings.compression_level),
            manifests=ManifestEmitter(tool),
            os_tag=settings.os_tag,
        )

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build(self, request: BuildRequest) -> BuildReport:
        """Execute the full pipeline for *request*.

        Returns the BuildReport on success; raises the stage's
        ``ImageBuildError`` on failure after recording it on ``self.machine``.
        """
        identity = BuildIdentity.for_today(request.image_name, self._clock)
        machine = BuildStateMachine(identity.name)
        self.machine = machine

        logger.info("starting build %s from %s", identity, request.archive_path)
        try:
            report = self._run(request, identity, machine)
        except Exception as exc:
            machine.fail(str(exc))
            logger.error("build %s failed in state %s: %s",
                         identity, machine.history[-1].from_state.value, exc)
            raise

        logger.info("build %s complete: %s, %s", identity,
                    report.artifacts.image_path, report.artifacts.manifest_path)
        return report

    def _run(
        self,
        request: BuildRequest,
        identity: BuildIdentity,
        machine: BuildStateMachine,
    ) -> BuildReport:
        # Preconditions and classification run before any dataset exists.
        check_archive_path(request.archive_path)
        classification = self.inspector.classify(request.archive_path)

        image_path = request.output_dir / identity.image_filename
        manifest_path = request.output_dir / identity.manifest_filename

        with self.datasets.provisioned(identity) as lease:
            dataset = lease.dataset
            machine.advance(BuildState.DATASET_CREATED)

            self.datasets.extract(dataset, request.archive_path, classification)
            machine.advance(BuildState.EXTRACTED)

            self.layout.adapt(dataset.root_path)
            machine.advance(BuildState.LAYOUT_ADAPTED)

            self.datasets.snapshot_and_serialize(dataset, self.serializer, image_path)
            lease.disarm()
            machine.advance(BuildState.SERIALIZED)
            machine.advance(BuildState.DATASET_DESTROYED)

        self.manifests.emit(
            ManifestParams(
                image_path=image_path,
                kernel_version=request.kernel_version,
                min_platform=request.min_platform,
                name=request.image_name,
                os=self._os_tag,
                version=identity.version,
                description=request.description,
                homepage=request.homepage,
            ),
            manifest_path,
        )
        machine.advance(BuildState.MANIFEST_EMITTED)

        artifacts = ImageArtifacts(image_path=image_path, manifest_path=manifest_path)
        machine.advance(BuildState.REPORTED)
        return BuildReport(
            identity=identity,
            classification=classification,
            dataset_name=dataset.name,
            artifacts=artifacts,
            transitions=machine.history,
        )
