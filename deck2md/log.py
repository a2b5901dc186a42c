# Copyright 2024 Liu Siyao
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
#
# Modifications Copyright 2025-2026 vanilla1108

import logging
from typing import Iterable, Optional

from tqdm import tqdm

_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
_DATE_FORMAT = '%H:%M:%S'


class TqdmLoggingHandler(logging.Handler):
    """通过 tqdm.write 输出日志，避免打断进度条。"""

    def emit(self, record):
        try:
            tqdm.write(self.format(record))
        except RecursionError:
            raise
        except Exception:
            self.handleError(record)


def setup_logging(level=logging.INFO, compat_tqdm: bool = True,
                  external_handlers: Optional[Iterable[logging.Handler]] = None) -> logging.Logger:
    """配置 deck2md 包级 logger。

    重复调用会替换之前由本函数安装的 handler，不会重复输出。

    参数:
        level: 日志级别。
        compat_tqdm: 为 True 时经 tqdm.write 输出，与进度条共存。
        external_handlers: 额外挂载的 handler（例如宿主程序的日志面板）。
    """
    package_logger = logging.getLogger('deck2md')
    for handler in list(package_logger.handlers):
        if getattr(handler, '_deck2md_owned', False):
            package_logger.removeHandler(handler)

    handler = TqdmLoggingHandler() if compat_tqdm else logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT, _DATE_FORMAT))
    handlers = [handler, *(external_handlers or [])]
    for h in handlers:
        h._deck2md_owned = True
        package_logger.addHandler(h)

    package_logger.setLevel(level)
    package_logger.propagate = False
    return package_logger
