import pytest

from hostprobe.commands import default_catalog
from hostprobe.core.registry import MemoryBackend, RegistryAccessor
from hostprobe.core.target import Target
from hostprobe.output.sinks import BufferSink

PS_ENGINE_V2 = r"HKLM\SOFTWARE\Microsoft\PowerShell\1\PowerShellEngine"
PS_ENGINE_V3 = r"HKLM\SOFTWARE\Microsoft\PowerShell\3\PowerShellEngine"
PS_CORE = r"HKLM\SOFTWARE\Microsoft\PowerShellCore\InstalledVersions"
PS_POLICY = r"HKLM\SOFTWARE\Policies\Microsoft\Windows\PowerShell"
NT_CURRENT_VERSION = r"HKLM\SOFTWARE\Microsoft\Windows NT\CurrentVersion"
UAC_POLICY = r"HKLM\SOFTWARE\Microsoft\Windows\CurrentVersion\Policies\System"
RUN_KEY = r"HKLM\SOFTWARE\Microsoft\Windows\CurrentVersion\Run"


@pytest.fixture
def make_accessor():
    """Builds a RegistryAccessor over in-memory registry contents."""
    def _make(keys=None, target=None, unreachable=False):
        return RegistryAccessor(MemoryBackend(keys, target or Target.local(), unreachable=unreachable))
    return _make


@pytest.fixture
def sink():
    return BufferSink()


@pytest.fixture
def catalog():
    return default_catalog()


@pytest.fixture
def hardened_host_keys():
    """A Windows 10 host with PSv2 still installed and every PowerShell logging policy on."""
    return {
        PS_ENGINE_V2: {"PowerShellVersion": "2.0"},
        PS_ENGINE_V3: {"PowerShellVersion": "5.1.19041.1"},
        PS_CORE + r"\31ab5147-9a97-4452-8443-d9709f0516e1": {"SemanticVersion": "7.4.1"},
        PS_POLICY + r"\Transcription": {
            "EnableTranscripting": "1",
            "EnableInvocationHeader": "1",
            "OutputDirectory": r"C:\Transcripts",
        },
        PS_POLICY + r"\ModuleLogging": {"EnableModuleLogging": "1"},
        PS_POLICY + r"\ModuleLogging\ModuleNames": {"*": "*", "Microsoft.PowerShell.*": "Microsoft.PowerShell.*"},
        PS_POLICY + r"\ScriptBlockLogging": {
            "EnableScriptBlockLogging": "1",
            "EnableScriptBlockInvocationLogging": "0",
        },
        NT_CURRENT_VERSION: {"CurrentMajorVersionNumber": 10},
        UAC_POLICY: {"EnableLUA": 1, "ConsentPromptBehaviorAdmin": 5, "FilterAdministratorToken": 0},
        RUN_KEY: {"SecurityHealth": r"C:\Windows\system32\SecurityHealthSystray.exe"},
    }
