"""Smart Bookmark Sorter: LLM based classification and placement of bookmarks."""
