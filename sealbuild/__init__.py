"""sealbuild - 可复现的 vendor + 固定哈希离线构建流水线"""

__version__ = "0.1.0"
