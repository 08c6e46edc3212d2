"""领域层模型与协议。

包含：
- models: 角色、流式状态以及 ChatMessage / ChatResult 等统一数据结构。
- message: 单条消息与流式增量读取。
- conversation_config: 经过校验的会话配置。
- conversation: 会话引擎（历史、准入、补全、统计）。
- rules / listeners: 准入决策函数与同步监听器注册表。
- exceptions: 业务异常类型定义。
"""
