"""
winebuild - patched Wine source build automation
"""
