from app.agent.tools.video_search import TavilyVideoSearch, get_video_search, is_relevant_video

__all__ = ["TavilyVideoSearch", "get_video_search", "is_relevant_video"]
