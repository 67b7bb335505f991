"""
Archive encryption methods.

This module provides:
- The EncryptionStrategy protocol
- Native AES-256 and ZipCrypto ZIP strategies
- The 7z strategy driven by the external tool
"""

from secure_archive.config import ArchiveEngineConfig
from secure_archive.models.archive import EncryptionMethod
from secure_archive.strategies.protocol import EncryptionStrategy
from secure_archive.strategies.seven_zip import SevenZipStrategy
from secure_archive.strategies.zip_archive import (
    Aes256Strategy,
    CryptoZipStrategy,
    NativeZipStrategy,
)
from secure_archive.tools.external_tool import ExternalToolAdapter


def build_strategies(
    config: ArchiveEngineConfig | None = None,
    tool_adapter: ExternalToolAdapter | None = None,
) -> dict[EncryptionMethod, EncryptionStrategy]:
    """
    Create one strategy per method, sharing a single tool adapter.

    Args:
        config: Engine configuration. Uses defaults if not provided.
        tool_adapter: Adapter for the external tool.

    Returns:
        Mapping from method to strategy.
    """
    config = config or ArchiveEngineConfig()
    tool_adapter = tool_adapter or ExternalToolAdapter(config)
    return {
        EncryptionMethod.AES256: Aes256Strategy(config, tool_adapter),
        EncryptionMethod.CRYPTO_ZIP: CryptoZipStrategy(config),
        EncryptionMethod.SEVEN_ZIP: SevenZipStrategy(config, tool_adapter),
    }


__all__ = [
    "Aes256Strategy",
    "CryptoZipStrategy",
    "EncryptionStrategy",
    "NativeZipStrategy",
    "SevenZipStrategy",
    "build_strategies",
]
