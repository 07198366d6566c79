from cowtoggle.config.io import (
    CONFIG_ENV_VAR as CONFIG_ENV_VAR,
)
from cowtoggle.config.io import (
    clear_config_cache as clear_config_cache,
)
from cowtoggle.config.io import (
    get_config_value as get_config_value,
)
from cowtoggle.config.io import (
    get_explicit_config_path as get_explicit_config_path,
)
from cowtoggle.config.io import (
    get_global_config_path as get_global_config_path,
)
from cowtoggle.config.io import (
    get_merged_config as get_merged_config,
)
from cowtoggle.config.io import (
    load_config_file as load_config_file,
)
from cowtoggle.config.io import (
    set_config_file as set_config_file,
)
from cowtoggle.config.models import (
    CONFIG_KEY_DESCRIPTIONS as CONFIG_KEY_DESCRIPTIONS,
)
from cowtoggle.config.models import (
    ConfigSource as ConfigSource,
)
from cowtoggle.config.models import (
    CowToggleConfig as CowToggleConfig,
)
from cowtoggle.config.models import (
    HashAlgorithm as HashAlgorithm,
)
from cowtoggle.config.models import (
    is_valid_key as is_valid_key,
)
