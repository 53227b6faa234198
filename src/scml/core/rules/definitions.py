"""
Declarative table of the built-in sensitivity rules.

Each row is ``(name, description, scope, patterns, severity, base_score)``.
Extension-scoped patterns are matched against the lower-case extension
including its dot (``.pem``); name-scoped patterns against the base name;
path-scoped patterns against the full path or logical address; content
patterns against each line of text.
"""

from scml.core.rules.models import MatchScope, Severity

NAME = MatchScope.FILE_NAME
EXTENSION = MatchScope.FILE_EXTENSION
PATH = MatchScope.FILE_PATH
CONTENT = MatchScope.FILE_CONTENT

DEFAULT_RULE_DEFINITIONS: tuple[tuple, ...] = (
    # Black: critical
    (
        "Passwords_XML",
        "Password files in XML format",
        NAME,
        (r".*password.*\.xml", r".*credential.*\.xml", r".*creds.*\.xml"),
        Severity.BLACK,
        100,
    ),
    (
        "Unattend_Files",
        "Windows unattended installation files",
        NAME,
        (r"unattend\.xml", r"sysprep\.xml", r"autounattend\.xml", r"unattended\.xml"),
        Severity.BLACK,
        100,
    ),
    (
        "Private_Keys",
        "Private key files",
        EXTENSION,
        (r"\.pem$", r"\.key$", r"\.pfx$", r"\.p12$", r"\.pkcs12$", r"\.ppk$"),
        Severity.BLACK,
        100,
    ),
    (
        "KeePass_Database",
        "KeePass password database",
        EXTENSION,
        (r"\.kdbx$", r"\.kdb$"),
        Severity.BLACK,
        100,
    ),
    # Red: high
    (
        "Config_Files_Sensitive",
        "Configuration files with potential secrets",
        NAME,
        (r"web\.config$", r"app\.config$", r"applicationhost\.config$", r"machine\.config$"),
        Severity.RED,
        80,
    ),
    (
        "Script_Credentials",
        "Scripts potentially containing credentials",
        CONTENT,
        (
            r"password\s*=\s*['\"][^'\"]+['\"]",
            r"pwd\s*=\s*['\"][^'\"]+['\"]",
            r"-Password\s+\S+",
            r"ConvertTo-SecureString.*-AsPlainText",
            r"net\s+user\s+\S+\s+\S+",
        ),
        Severity.RED,
        75,
    ),
    (
        "Connection_Strings",
        "Database connection strings",
        CONTENT,
        (
            r"(Server|Data Source|Initial Catalog|User ID)\s*=[^;]+;",
            r"Provider\s*=\s*[\w\.]+;.*Password\s*=",
            r"mongodb://[^:]+:[^@]+@",
            r"postgres://[^:]+:[^@]+@",
        ),
        Severity.RED,
        80,
    ),
    (
        "AWS_Credentials",
        "AWS access keys and secrets",
        CONTENT,
        (
            r"AKIA[0-9A-Z]{16}",
            r"aws_access_key_id\s*=\s*\S+",
            r"aws_secret_access_key\s*=\s*\S+",
            r"AWS_SESSION_TOKEN",
        ),
        Severity.RED,
        85,
    ),
    (
        "Azure_Credentials",
        "Azure credentials and keys",
        CONTENT,
        (
            r"DefaultEndpointsProtocol=https;AccountName=",
            r"AccountKey=[A-Za-z0-9+/]{86}==",
            r"clientSecret\s*[:=]\s*['\"][^'\"]+['\"]",
        ),
        Severity.RED,
        85,
    ),
    (
        "API_Keys",
        "API keys and tokens",
        CONTENT,
        (
            r"api[_-]?key\s*[:=]\s*['\"]?[A-Za-z0-9_\-]{20,}['\"]?",
            r"token\s*[:=]\s*['\"]?[A-Za-z0-9_\-\.]{20,}['\"]?",
            r"bearer\s+[A-Za-z0-9_\-\.]+",
        ),
        Severity.RED,
        75,
    ),
    (
        "VPN_Config",
        "VPN configuration files",
        NAME,
        (r"\.ovpn$", r"\.vpn$", r"vpnconfig", r"\.pcf$"),
        Severity.RED,
        70,
    ),
    (
        "Base64_Passwords",
        "Base64 encoded passwords",
        CONTENT,
        (
            r"[Pp]assword['\"]?\s*:\s*['\"]?[A-Za-z0-9+/]{8,}={0,2}['\"]?",
            r"[Pp]wd['\"]?\s*:\s*['\"]?[A-Za-z0-9+/]{8,}={0,2}['\"]?",
        ),
        Severity.RED,
        70,
    ),
    (
        "NTLM_Hashes",
        "NTLM password hashes",
        CONTENT,
        (r"[A-Fa-f0-9]{32}:[A-Fa-f0-9]{32}",),
        Severity.RED,
        85,
    ),
    # Yellow: medium
    (
        "PowerShell_Scripts",
        "PowerShell scripts",
        EXTENSION,
        (r"\.ps1$", r"\.psm1$", r"\.psd1$"),
        Severity.YELLOW,
        50,
    ),
    (
        "Batch_Scripts",
        "Batch and command scripts",
        EXTENSION,
        (r"\.bat$", r"\.cmd$"),
        Severity.YELLOW,
        45,
    ),
    (
        "Config_Files_General",
        "General configuration files",
        EXTENSION,
        (r"\.config$", r"\.conf$", r"\.cfg$", r"\.ini$", r"\.properties$"),
        Severity.YELLOW,
        40,
    ),
    (
        "Certificates",
        "Certificate files",
        EXTENSION,
        (r"\.cer$", r"\.crt$", r"\.der$"),
        Severity.YELLOW,
        50,
    ),
    (
        "Database_Files",
        "Database files",
        EXTENSION,
        (r"\.mdb$", r"\.mdf$", r"\.ldf$", r"\.sqlite$", r"\.db$"),
        Severity.YELLOW,
        60,
    ),
    (
        "Backup_Files",
        "Backup files",
        NAME,
        (r"\.bak$", r"\.backup$", r"\.old$", r"\.orig$", r"~$"),
        Severity.YELLOW,
        45,
    ),
    (
        "Source_Control",
        "Source control files",
        PATH,
        (r"(^|[/\\])\.(git|svn|hg)([/\\]|$)",),
        Severity.YELLOW,
        55,
    ),
    (
        "SCCM_Task_Sequences",
        "Task sequence files",
        NAME,
        (r".*TaskSequence.*\.xml", r"^TS.*\.xml$", r".*\.ts$"),
        Severity.YELLOW,
        60,
    ),
    (
        "Group_Policy",
        "Group Policy files",
        NAME,
        (r"Registry\.pol$", r"GptTmpl\.inf$", r"GPO\.xml"),
        Severity.YELLOW,
        55,
    ),
    # Green: informational
    (
        "XML_Files",
        "XML files",
        EXTENSION,
        (r"\.xml$",),
        Severity.GREEN,
        20,
    ),
    (
        "Log_Files",
        "Log files",
        EXTENSION,
        (r"\.log$", r"\.txt$"),
        Severity.GREEN,
        15,
    ),
    (
        "Documentation",
        "Documentation files",
        EXTENSION,
        (r"\.doc$", r"\.docx$", r"\.xls$", r"\.xlsx$", r"\.pdf$"),
        Severity.GREEN,
        25,
    ),
    (
        "Email_Addresses",
        "Email addresses in files",
        CONTENT,
        (r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}",),
        Severity.GREEN,
        30,
    ),
)

# Extensions whose content is scanned line by line.
TEXT_FILE_EXTENSIONS = frozenset(
    {
        "xml", "txt", "config", "ini", "ps1", "psm1", "psd1", "vbs", "bat", "cmd",
        "json", "yml", "yaml", "conf", "cfg", "properties", "log", "sql", "cs", "vb",
        "js", "py", "rb", "sh", "inf",
    }
)
