"""
Reference resolution.

Nodes and volumes are identified in the cluster by slash-delimited opaque
strings such as ``aws:///us-east-1a/i-0abc`` or
``kubernetes.io/aws-ebs/vol-0abc``. A resolver turns such a reference into
the provider-native ID. References that do not follow the convention are
rejected, never guessed at.
"""

from abc import ABC, abstractmethod

from .errors import ReferenceParseError


class ReferenceResolver(ABC):
    """Turns an opaque cluster reference into a provider-native ID."""

    @abstractmethod
    def resolve(self, reference: str) -> str:
        """
        Resolve a reference.

        Raises:
            ReferenceParseError: If the reference cannot be resolved
        """
        pass


class LastPathSegmentResolver(ReferenceResolver):
    """The provider ID is the final ``/``-separated segment of the reference."""

    separator = "/"

    def resolve(self, reference: str) -> str:
        if not reference:
            raise ReferenceParseError(reference, "reference is empty")
        if self.separator not in reference:
            raise ReferenceParseError(reference, "reference has no path segments")

        provider_id = reference.rsplit(self.separator, 1)[-1].strip()
        if not provider_id:
            raise ReferenceParseError(reference, "final path segment is empty")
        return provider_id
