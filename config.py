"""
Configuration module for the task scheduler.
Loads settings from environment variables or .env file.
任务调度器配置模块。
从环境变量或 .env 文件加载所有配置项。
"""

import os
from dotenv import load_dotenv

load_dotenv()  # 自动读取项目根目录的 .env 文件（若存在），优先级低于系统环境变量

# --- Run Engine ---
# --- 运行引擎参数 ---
# Upper bound on task bodies executing at the same time within one wave.
# 0 means unbounded: every ready task runs at once.
# 同一轮中同时执行的任务体上限；0 表示不限制（所有就绪任务同时执行）。
MAX_PARALLEL_TASKS = int(os.getenv("SCHEDULER_MAX_PARALLEL_TASKS", "0"))

# --- Fallback ---
# --- 失败替代任务 ---
MAX_FALLBACK_DEPTH = int(os.getenv("SCHEDULER_MAX_FALLBACK_DEPTH", "8"))  # fallback 链最大长度，超出视为不可恢复的失败
