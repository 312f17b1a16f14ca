"""
Production pipeline errors.

Build-time errors (DuplicateMapping, UnknownTransformKey, MappingDefinitionError)
are raised while the mapping table is constructed, never per call.
Source-not-ready and derivation failures are NOT exceptions — they are recorded
as skipped PrefillResults so sibling mappings keep resolving.
"""


class CascadeError(Exception):
    """Base class for all production pipeline errors."""


class InvalidStage(CascadeError, ValueError):
    """Stage identifier is not one of the six production stages."""


class InvalidTransition(CascadeError, ValueError):
    """(from_stage, to_stage) is not an adjacent pair in the stage order."""

    def __init__(self, from_stage, to_stage):
        self.from_stage = from_stage
        self.to_stage = to_stage
        super().__init__(f"Invalid stage transition: {from_stage} -> {to_stage}")


class UnknownTransformKey(CascadeError, KeyError):
    """A mapping references a transform/calculation that isn't registered."""

    def __init__(self, key, detail: str = ""):
        self.key = key
        message = f"No derivation registered for key: {key}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)

    def __str__(self):
        return self.args[0]


class DuplicateMapping(CascadeError, ValueError):
    """Two mappings claim the same (transition, target_field)."""


class MappingDefinitionError(CascadeError, ValueError):
    """A mapping is malformed (unknown target field, unresolvable source, etc.)."""


class TerminalStage(CascadeError):
    """Project is already at the final stage and cannot advance."""


class ProjectNotFound(CascadeError):
    pass


class ScopingFormNotFound(CascadeError):
    pass


class ProjectAlreadyExists(CascadeError):
    def __init__(self, scoping_form_id: int, project_id: int):
        self.scoping_form_id = scoping_form_id
        self.project_id = project_id
        super().__init__(
            f"Production project {project_id} already exists for scoping form {scoping_form_id}"
        )


class InvalidStageUpdate(CascadeError, ValueError):
    """Manual stage edit names fields the current stage doesn't have."""


class ConcurrentAdvanceConflict(CascadeError):
    """The persisted project changed between load and commit. Caller must retry."""

    def __init__(self, project_id: int, expected_stage: str, expected_version: int):
        self.project_id = project_id
        self.expected_stage = expected_stage
        self.expected_version = expected_version
        super().__init__(
            f"Project {project_id} was modified concurrently "
            f"(expected stage={expected_stage}, version={expected_version}); retry"
        )
