import socket
from typing import Final

TEST_DOMAIN_NAME: Final[str] = "hostvisor-test"
TEST_SSH_KEY_NAME: Final[str] = "foo"
TEST_JASPER_PORT: Final[int] = 12345


def find_free_port() -> int:
    """Find a free port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
