"""Commands for gl-cli."""

from gl_cli.commands.base import Command, get_command_registry, register_command

# Import all command modules to register them
from gl_cli.commands.ci import (
    DownloadArtifactCommand,
    GetPipelineCommand,
    ListPipelinesCommand,
    RetryJobCommand,
    RunPipelineCommand,
    RunTriggerPipelineCommand,
    TraceJobCommand,
)
from gl_cli.commands.issue import NoteIncidentCommand, NoteIssueCommand
from gl_cli.commands.label import CreateLabelCommand, DeleteLabelCommand, ListLabelsCommand
from gl_cli.commands.mr import (
    ApproversMergeRequestCommand,
    CheckoutMergeRequestCommand,
    CloseMergeRequestCommand,
    CreateMergeRequestCommand,
    DiffMergeRequestCommand,
    IssuesMergeRequestCommand,
    MergeMergeRequestCommand,
    NoteMergeRequestCommand,
    RebaseMergeRequestCommand,
    ReopenMergeRequestCommand,
    TodoMergeRequestCommand,
)
from gl_cli.commands.release import (
    CreateReleaseCommand,
    DeleteReleaseCommand,
    DownloadReleaseCommand,
    UploadReleaseCommand,
    ViewReleaseCommand,
)
from gl_cli.commands.snippet import CreateSnippetCommand
from gl_cli.commands.update import CheckUpdateCommand

__all__ = [
    "Command",
    "register_command",
    "get_command_registry",
    "ListPipelinesCommand",
    "GetPipelineCommand",
    "RunPipelineCommand",
    "RunTriggerPipelineCommand",
    "RetryJobCommand",
    "TraceJobCommand",
    "DownloadArtifactCommand",
    "CreateMergeRequestCommand",
    "CloseMergeRequestCommand",
    "ReopenMergeRequestCommand",
    "MergeMergeRequestCommand",
    "RebaseMergeRequestCommand",
    "CheckoutMergeRequestCommand",
    "DiffMergeRequestCommand",
    "NoteMergeRequestCommand",
    "TodoMergeRequestCommand",
    "IssuesMergeRequestCommand",
    "ApproversMergeRequestCommand",
    "NoteIssueCommand",
    "NoteIncidentCommand",
    "CreateReleaseCommand",
    "UploadReleaseCommand",
    "DownloadReleaseCommand",
    "ViewReleaseCommand",
    "DeleteReleaseCommand",
    "CreateLabelCommand",
    "DeleteLabelCommand",
    "ListLabelsCommand",
    "CreateSnippetCommand",
    "CheckUpdateCommand",
]
