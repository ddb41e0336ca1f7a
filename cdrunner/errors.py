"""
Local errors raised while preparing an application revision.
"""


class CodeDeployRunnerError(Exception):
    """Base class for errors that abort a runner stage."""


class ConfigurationError(CodeDeployRunnerError):
    """Invalid parameters, unsupported bundle type, no files or no appspec.yml."""


class PackagingFailure(CodeDeployRunnerError):
    """I/O failure while reading a source file or writing the revision archive."""
