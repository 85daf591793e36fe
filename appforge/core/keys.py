# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# DEPLOY KEYS - RSA KEY PAIR ISSUER
# -----------------------------------------------------------------------------
# Responsibility: Mint a fresh RSA key pair for the operator's Git deploy key.
#
# - Private half: PEM, PKCS#1 ("BEGIN RSA PRIVATE KEY")
# - Public half: OpenSSH single line ("ssh-rsa AAAA... comment"), which is
#   what GitHub / GitLab / Gitea deploy-key fields accept
#
# Stateless: nothing is cached, nothing is written to disk.
# -----------------------------------------------------------------------------

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from rich.console import Console

from appforge.domain.models import KeyPair

console = Console()

KEY_SIZE = 4096
PUBLIC_EXPONENT = 65537
KEY_COMMENT = "appforge-deploy-key"


class KeyGenFailed(Exception):
    """Raised when the crypto backend cannot produce a key pair."""

    pass


def issue_key_pair(comment: str = KEY_COMMENT, key_size: int = KEY_SIZE) -> KeyPair:
    """
    Generate an independent RSA key pair.

    Args:
        comment: Trailing comment on the OpenSSH public key line.
        key_size: Modulus length in bits.

    Returns:
        KeyPair with OpenSSH public key and PKCS#1 PEM private key.

    Raises:
        KeyGenFailed: On any crypto library failure.
    """
    try:
        private_key = rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=key_size)

        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("ascii")

        public_ssh = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.OpenSSH,
            format=serialization.PublicFormat.OpenSSH,
        ).decode("ascii")
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyGenFailed(f"RSA key generation failed: {e}")

    if comment:
        public_ssh = f"{public_ssh} {comment}"

    console.print(f"[green][KEYS] Issued {key_size}-bit RSA deploy key[/green]")
    return KeyPair(public_key=public_ssh.strip(), private_key=private_pem)
