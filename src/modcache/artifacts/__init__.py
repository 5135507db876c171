from .curseforge import Mod
from .maven import Artifact, ResolvedArtifact, VerifyResult, verify_cached

__all__ = ["Mod", "Artifact", "ResolvedArtifact", "VerifyResult", "verify_cached"]
