"""
docfill - 模板驱动的PDF填充生成

模块结构：
- config/     运行期配置加载
- models/     数据模型定义（元素/文档/渲染结果）
- engine/     生成引擎（脚本求值/取值/分段/资源/合成/表格/编排）
- store/      模板与上传文件存储
- service.py  Generate(templateId, dataContext) 入口
- cli.py      命令行
"""

__version__ = "0.1.0"
