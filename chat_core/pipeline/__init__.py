"""流式管线层。

- scheduler: 后台线程唤醒单线程上下文的接口与基于队列的实现。
- turn_pipeline: 单轮对话的片段通道、防抖刷新与收尾逻辑。
"""
