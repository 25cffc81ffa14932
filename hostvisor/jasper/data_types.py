from enum import auto

from pydantic import Field

from hostvisor.common.enums import KebabCaseStrEnum
from hostvisor.common.frozen_model import FrozenModel


class ProcessFilter(KebabCaseStrEnum):
    """Which processes a list call returns, by lifecycle state."""

    ALL = auto()
    RUNNING = auto()
    TERMINATED = auto()
    FAILED = auto()
    SUCCESSFUL = auto()


class CreateOptions(FrozenModel):
    """How to launch a process under the remote supervisor."""

    args: list[str] = Field(description="Argument vector; the first element is the executable")
    environment: dict[str, str] = Field(default_factory=dict, repr=False)
    working_directory: str = Field(default="")
    tags: list[str] = Field(default_factory=list, description="Labels used to find the process later")
    capture_output: bool = Field(default=False, description="Keep stdout/stderr so they can be read back")


class ProcessInfo(FrozenModel):
    """A snapshot of one remote process as reported by the supervisor."""

    id: str
    host_id: str = Field(default="")
    pid: int = Field(default=0)
    options: CreateOptions
    is_running: bool = Field(default=False)
    complete: bool = Field(default=False)
    successful: bool = Field(default=False)
    exit_code: int = Field(default=0)

    def matches(self, process_filter: ProcessFilter) -> bool:
        match process_filter:
            case ProcessFilter.ALL:
                return True
            case ProcessFilter.RUNNING:
                return self.is_running
            case ProcessFilter.TERMINATED:
                return not self.is_running
            case ProcessFilter.FAILED:
                return self.complete and not self.successful
            case ProcessFilter.SUCCESSFUL:
                return self.complete and self.successful
