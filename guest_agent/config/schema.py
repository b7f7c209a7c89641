# guest_agent/config/schema.py
"""
waagent.conf schema and defaults

Every recognised key has exactly one expected type; keys not listed here are
ignored when the file is parsed.
"""

from enum import Enum
from typing import Dict, Optional, Union

ConfigValue = Union[bool, int, str, None]

NONE_STR = "None"


class ExpectedType(Enum):
    BOOL = "bool"
    INTEGER = "integer"
    STRING = "string"
    PORT = "port"


BOOL_OPTIONS: Dict[str, bool] = {
    "OS.AllowHTTP": False,
    "OS.EnableFirewall": False,
    "OS.EnableFIPS": False,
    "OS.EnableRDMA": False,
    "OS.UpdateRdmaDriver": False,
    "OS.CheckRdmaDriver": False,
    "Logs.Verbose": False,
    "Logs.Console": True,
    "Logs.Collect": True,
    "Extensions.Enabled": True,
    "Extensions.WaitForCloudInit": False,
    "Provisioning.AllowResetSysUser": False,
    "Provisioning.RegenerateSshHostKeyPair": False,
    "Provisioning.DeleteRootPassword": False,
    "Provisioning.DecodeCustomData": False,
    "Provisioning.ExecuteCustomData": False,
    "Provisioning.MonitorHostName": False,
    "DetectScvmmEnv": False,
    "ResourceDisk.Format": False,
    "ResourceDisk.EnableSwap": False,
    "ResourceDisk.EnableSwapEncryption": False,
    "AutoUpdate.Enabled": True,
    "AutoUpdate.UpdateToLatestVersion": True,
    "EnableOverProvisioning": True,
    # Debug options are experimental
    "Debug.CgroupLogMetrics": False,
    "Debug.CgroupDisableOnProcessCheckFailure": True,
    "Debug.CgroupDisableOnQuotaCheckFailure": True,
    "Debug.EnableAgentMemoryUsageCheck": False,
    "Debug.EnableFastTrack": True,
    "Debug.EnableGAVersioning": True,
    "Debug.EnableCgroupV2ResourceLimiting": False,
    "Debug.EnableExtensionPolicy": False,
}

STRING_OPTIONS: Dict[str, str] = {
    "Lib.Dir": "/var/lib/waagent",
    "DVD.MountPoint": "/mnt/cdrom/secure",
    "Pid.File": "/var/run/waagent.pid",
    "Extension.LogDir": "/var/log/azure",
    "OS.OpensslPath": "/usr/bin/openssl",
    "OS.SshDir": "/etc/ssh",
    "OS.HomeDir": "/home",
    "OS.PasswordPath": "/etc/shadow",
    "OS.SudoersDir": "/etc/sudoers.d",
    "OS.RootDeviceScsiTimeout": NONE_STR,
    "Provisioning.Agent": "auto",
    "Provisioning.SshHostKeyPairType": "rsa",
    "Provisioning.PasswordCryptId": "6",
    "HttpProxy.Host": NONE_STR,
    "ResourceDisk.MountPoint": "/mnt/resource",
    "ResourceDisk.MountOptions": NONE_STR,
    "ResourceDisk.Filesystem": "ext3",
    "AutoUpdate.GAFamily": "Prod",
    "Policy.PolicyFilePath": "/etc/waagent_policy.json",
    "Protocol.EndpointDiscovery": "dhcp",
}

INTEGER_OPTIONS: Dict[str, int] = {
    "Extensions.GoalStatePeriod": 6,
    "Extensions.InitialGoalStatePeriod": 6,
    "Extensions.WaitForCloudInitTimeout": 3600,
    "OS.EnableFirewallPeriod": 300,
    "OS.RemovePersistentNetRulesPeriod": 30,
    "OS.RootDeviceScsiTimeoutPeriod": 30,
    "OS.MonitorDhcpClientRestartPeriod": 30,
    "OS.SshClientAliveInterval": 180,
    "Provisioning.MonitorHostNamePeriod": 30,
    "Provisioning.PasswordCryptSaltLength": 10,
    "ResourceDisk.SwapSizeMB": 0,
    "Autoupdate.Frequency": 3600,
    "Logs.CollectPeriod": 3600,
    # Debug options are experimental
    "Debug.CgroupCheckPeriod": 300,
    "Debug.AgentCpuQuota": 50,
    "Debug.AgentCpuThrottledTimeThreshold": 120,
    "Debug.AgentMemoryQuota": 30 * 1024 * 1024,  # 30 MiB
    "Debug.EtpCollectionPeriod": 300,
    "Debug.AutoUpdateHotfixFrequency": 14400,
    "Debug.AutoUpdateNormalFrequency": 86400,
    "Debug.FirewallRulesLogPeriod": 86400,
    "Debug.LogCollectorInitialDelay": 5 * 60,
}

PORT_OPTIONS: Dict[str, Optional[int]] = {
    "HttpProxy.Port": None,
}

CONFIG_SCHEMA: Dict[str, ExpectedType] = {
    **{key: ExpectedType.BOOL for key in BOOL_OPTIONS},
    **{key: ExpectedType.STRING for key in STRING_OPTIONS},
    **{key: ExpectedType.INTEGER for key in INTEGER_OPTIONS},
    **{key: ExpectedType.PORT for key in PORT_OPTIONS},
}


def get_config_defaults() -> Dict[str, ConfigValue]:
    """Fresh copy of every default, keyed by option name"""
    return {**BOOL_OPTIONS, **STRING_OPTIONS, **INTEGER_OPTIONS, **PORT_OPTIONS}


def get_expected_type(key: str) -> Optional[ExpectedType]:
    return CONFIG_SCHEMA.get(key)


def is_valid_key(key: str) -> bool:
    return key in CONFIG_SCHEMA
