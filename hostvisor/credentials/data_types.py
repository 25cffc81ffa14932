import base64
import binascii
import json

from pydantic import Field
from pydantic import SecretBytes

from hostvisor.common.frozen_model import FrozenModel
from hostvisor.errors import IncompleteCredentialsError


class Credentials(FrozenModel):
    """TLS material authenticating one end of the remote-procedure channel.

    All three parts are PEM bytes. The key is a SecretBytes so that repr() and
    model_dump() never show it.
    """

    ca_cert: bytes = Field(description="Certificate of the authority both ends trust")
    cert: bytes = Field(description="Certificate presented by this end")
    key: SecretBytes = Field(description="Private key for cert")
    server_name: str = Field(default="", description="Name the peer's certificate is expected to carry")

    def validate_complete(self) -> None:
        if not self.ca_cert:
            raise IncompleteCredentialsError("ca_cert")
        if not self.cert:
            raise IncompleteCredentialsError("cert")
        if not self.key.get_secret_value():
            raise IncompleteCredentialsError("key")

    def export(self) -> bytes:
        """Serialize to the JSON document the host-side supervisor reads from its credentials file.

        Byte fields are base64-encoded. Raises IncompleteCredentialsError if any part is missing.
        """
        self.validate_complete()
        document = {
            "ca_cert": base64.b64encode(self.ca_cert).decode("ascii"),
            "cert": base64.b64encode(self.cert).decode("ascii"),
            "key": base64.b64encode(self.key.get_secret_value()).decode("ascii"),
            "server_name": self.server_name,
        }
        return json.dumps(document, separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_export(cls, data: bytes) -> "Credentials":
        """Inverse of export()."""
        try:
            document = json.loads(data)
            credentials = cls(
                ca_cert=base64.b64decode(document.get("ca_cert", ""), validate=True),
                cert=base64.b64decode(document.get("cert", ""), validate=True),
                key=SecretBytes(base64.b64decode(document.get("key", ""), validate=True)),
                server_name=document.get("server_name", ""),
            )
        except (ValueError, TypeError, AttributeError, binascii.Error) as e:
            raise IncompleteCredentialsError("credentials") from e
        credentials.validate_complete()
        return credentials
