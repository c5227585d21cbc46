"""
Custom exceptions for ctest-explorer
"""


class CTestExplorerError(Exception):
    """Base exception for all ctestexplorer errors"""
    pass


class CatalogUnavailableError(CTestExplorerError):
    """The build system could not be queried for test executables"""
    pass


class UnresolvableExecutableError(CTestExplorerError):
    """No ancestor of a selected test carries an executable path"""
    pass


class ProcessError(CTestExplorerError):
    """Error with the spawned test process"""
    pass


class DebuggerError(CTestExplorerError):
    """The debugger could not be configured or launched"""
    pass


class ConfigError(CTestExplorerError):
    """Malformed configuration file"""
    pass
