"""
Keyword tables, search queries and fallbacks for tech news curation.

These lists drive the relevance filter, the deterministic scorer and the
category assignment. Tunable numbers (counts, windows, weights) live in
``campus_curator.models.settings``.
"""

from typing import Dict, List, Any


NEWS_API_URL = "https://newsapi.org/v2/everything"
USER_AGENT = "CampusCurator/1.0"

# NewsAPI source ids
TECH_SOURCES: List[str] = [
    # Major tech publications
    'techcrunch', 'the-verge', 'wired', 'ars-technica', 'engadget',
    # General tech & business
    'tech-radar', 'the-next-web', 'venture-beat', 'recode', 'fast-company', 'fortune',
    'business-insider', 'bloomberg', 'reuters', 'associated-press', 'cnn-business',
    # AI & deep tech
    'mit-technology-review',
    'tech-republic', 'zdnet', 'mashable', 'gizmodo', 'lifehacker', 'digital-trends',
    # Gaming & consumer tech
    'polygon', 'gamespot', 'ign', 'kotaku',
    # Developer & open source
    'github-blog', 'stack-overflow-blog', 'dev-to',
    # Security & enterprise
    'krebs-on-security', 'threatpost', 'dark-reading',
]

TECH_QUERIES: List[str] = [
    '"artificial intelligence" OR "machine learning" OR "deep learning" OR "OpenAI" OR "ChatGPT" '
    'OR "GPT" OR "neural network" OR "AI model" OR "AI research"',
    '"tech innovation" OR "tech breakthrough" OR "software development" OR "app development" '
    'OR "programming" OR "coding" OR "developer tools"',
    '"Apple" OR "Google" OR "Microsoft" OR "Amazon Web Services" OR "Meta" OR "Tesla" '
    'OR "NVIDIA" OR "Intel" OR "Adobe" OR "Salesforce"',
    '"tech startup" OR "startup funding" OR "venture capital" OR "Series A" OR "Series B" '
    'OR "unicorn startup" OR "IPO tech" OR "acquisition"',
    '"smartphone" OR "iPhone" OR "Android" OR "laptop" OR "tablet" OR "smartwatch" '
    'OR "consumer electronics" OR "tech review"',
    '"open source" OR "GitHub" OR "API" OR "framework" OR "database" OR "cloud computing" '
    'OR "SaaS" OR "software platform"',
    '"blockchain technology" OR "cryptocurrency" OR "cybersecurity" OR "IoT" OR "5G technology" '
    'OR "quantum computing" OR "robotics" OR "automation"',
    '"enterprise software" OR "business software" OR "digital transformation" OR "tech earnings" '
    'OR "tech industry trends"',
]

DEFAULT_CATEGORY = 'Tech Industry'

TECH_KEYWORDS: Dict[str, Dict[str, Any]] = {
    'AI/ML': {
        'priority': 7,
        'keywords': [
            'artificial intelligence', 'AI', 'machine learning', 'ML', 'neural network',
            'deep learning', 'GPT', 'OpenAI', 'ChatGPT', 'LLM', 'computer vision',
            'NLP', 'natural language processing', 'claude', 'gemini', 'llama',
            'transformer', 'pytorch', 'tensorflow', 'hugging face', 'reinforcement learning',
            'generative AI', 'speech recognition', 'autonomous systems',
            'foundation model', 'large language model', 'multimodal', 'diffusion model',
        ],
    },
    'Startups': {
        'priority': 8,
        'keywords': [
            'startup', 'funding', 'Series A', 'Series B', 'Series C', 'VC',
            'venture capital', 'entrepreneur', 'unicorn', 'IPO', 'acquisition',
            'merger', 'tech startup', 'fintech', 'edtech', 'healthtech',
            'cleantech', 'biotech', 'SaaS', 'B2B', 'B2C',
        ],
    },
    'Tech Industry': {
        'priority': 8,
        'keywords': [
            'apple', 'google', 'microsoft', 'amazon', 'meta', 'tesla', 'nvidia',
            'intel', 'amd', 'qualcomm', 'software', 'platform', 'cloud', 'enterprise',
            'earnings', 'stock', 'tech earnings', 'semiconductor', 'cloud computing',
            'data center', 'server', 'infrastructure', 'enterprise software',
        ],
    },
    'Cybersecurity': {
        'priority': 8,
        'keywords': [
            'cybersecurity', 'security', 'privacy', 'encryption', 'blockchain', 'cryptocurrency',
            'data protection', 'vulnerability', 'malware', 'ransomware', 'phishing', 'breach',
            'authentication', 'biometric', 'zero trust', 'endpoint security', 'network security',
            'cloud security', 'identity management', 'firewall', 'VPN', 'secure coding',
        ],
    },
    'Software Development': {
        'priority': 8,
        'keywords': [
            'programming', 'developer', 'software development', 'coding', 'open source',
            'github', 'API', 'framework', 'library', 'SDK', 'IDE', 'devops', 'agile',
            'javascript', 'python', 'react', 'node.js', 'kubernetes', 'docker', 'microservices',
            'web development', 'mobile development', 'full stack', 'backend', 'frontend',
        ],
    },
    'Gaming': {
        'priority': 7,
        'keywords': [
            'gaming', 'video game', 'game development', 'unity', 'unreal engine', 'game studio',
            'esports', 'gaming console', 'ps5', 'xbox', 'nintendo', 'steam', 'mobile game',
            'VR gaming', 'AR gaming', 'game engine', 'indie game', 'AAA game', 'streaming',
        ],
    },
    'Gadgets': {
        'priority': 7,
        'keywords': [
            'iphone', 'android', 'smartphone', 'laptop', 'tablet', 'smartwatch',
            'earbuds', 'headphones', 'console', 'vr', 'ar', 'mixed reality',
            'processor', 'GPU', 'CPU', 'display', 'battery', 'camera', 'sensor',
            'wearable', 'smart home device', 'consumer electronics',
        ],
    },
    'IoT': {
        'priority': 7,
        'keywords': [
            'internet of things', 'iot', 'smart home', 'connected device', 'sensor',
            'automation', 'smart city', 'edge computing', 'embedded', '5G', 'wireless',
            'mesh network', 'industrial IoT', 'smart grid', 'connected car', 'telematics',
            'smart building', 'smart infrastructure', 'environmental monitoring',
        ],
    },
    'Mobile Tech': {
        'priority': 7,
        'keywords': [
            'mobile app', 'app development', 'ios', 'android', 'mobile platform',
            'app store', 'google play', 'mobile security', 'mobile payments', 'mobile UI',
            'cross platform', 'react native', 'flutter', 'mobile analytics', 'push notifications',
        ],
    },
    'Hardware': {
        'priority': 7,
        'keywords': [
            'hardware', 'semiconductor', 'chip design', 'processor architecture', 'memory',
            'storage', 'SSD', 'GPU architecture', 'CPU performance', 'benchmark', 'overclocking',
            'motherboard', 'RAM', 'cooling system', 'power supply', 'PCIe', 'USB', 'thunderbolt',
        ],
    },
}

BREAKTHROUGH_KEYWORDS: List[str] = [
    'breakthrough', 'revolutionary', 'groundbreaking', 'innovative', 'first of its kind',
    'new record', 'milestone', 'pioneering', 'cutting-edge', 'state-of-the-art',
    'unprecedented', 'novel', 'discovery', 'invention', 'patent', 'research',
    'study', 'experiment', 'trial', 'prototype', 'beta', 'launch',
]

# Any match rejects the article outright
EXCLUDED_KEYWORDS: List[str] = [
    # War & military
    'war', 'warfare', 'military', 'army', 'navy', 'air force', 'marines', 'soldier', 'troops',
    'combat', 'battle', 'fighting', 'conflict', 'invasion', 'attack', 'bombing', 'missile',
    'weapon', 'weapons', 'gun', 'rifle', 'ammunition', 'explosive', 'bomb', 'grenade',
    'drone strike', 'military drone', 'war drone', 'combat drone', 'surveillance drone',
    'ukraine war', 'russia ukraine', 'gaza conflict', 'israel palestine', 'syria war',
    'north korea', 'china military', 'taiwan conflict',
    'nuclear weapon', 'nuclear missile', 'ballistic missile', 'cruise missile',
    'defense contractor', 'arms dealer', 'military contract', 'defense spending',
    # Politics
    'politics', 'political', 'election', 'voting', 'campaign', 'candidate', 'republican', 'democrat',
    'congress', 'senate', 'house of representatives', 'politician', 'government policy',
    'white house', 'legislative', 'regulation', 'policy debate', 'partisan', 'bipartisan',
    'supreme court', 'federal court', 'immigration policy', 'healthcare policy',
    # Violence
    'death', 'died', 'killed', 'murder', 'shooting', 'violence', 'violent', 'assault',
    'terrorism', 'terrorist', 'extremist', 'hate crime', 'mass shooting', 'gun violence',
    'kidnapping', 'hostage', 'suicide', 'overdose', 'fatal accident', 'plane crash',
    # Scandal and controversy
    'scandal', 'controversy', 'arrest', 'charged with', 'indicted', 'lawsuit',
    'sexual harassment', 'discrimination', 'racism', 'sexism', 'hate speech',
    'conspiracy theory', 'misinformation', 'disinformation', 'propaganda',
    # Non-tech lifestyle
    'recipe for', 'pizza dough', 'cooking tips', 'food recipe', 'restaurant review',
    'sports score', 'game score', 'football game', 'basketball score', 'golf tournament',
    'fashion trend', 'beauty tips', 'makeup tutorial', 'hair styling',
    'travel guide', 'vacation spots', 'real estate market', 'home buying',
    'fitness routine', 'workout tips', 'diet plan', 'weight loss',
    'celebrity gossip', 'movie review', 'tv show recap', 'entertainment gossip',
]

# At least one of these (or a TECH_KEYWORDS term) must appear
EDUCATIONAL_TECH_INDICATORS: List[str] = [
    'tech', 'technology', 'digital', 'app', 'software', 'platform', 'system',
    'innovation', 'startup', 'online', 'internet', 'web', 'mobile', 'device', 'electronic',
    'apple', 'google', 'microsoft', 'amazon', 'meta', 'facebook', 'tesla', 'nvidia',
    'intel', 'amd', 'samsung', 'sony', 'netflix', 'uber', 'airbnb', 'spotify', 'zoom',
    'salesforce', 'oracle', 'adobe', 'tiktok', 'linkedin',
    'code', 'coding', 'programming', 'developer', 'algorithm', 'API',
    'database', 'framework', 'library', 'github', 'open source',
    'AI', 'artificial intelligence', 'machine learning', 'data analytics', 'neural',
    'automation', 'robot', 'chatbot', 'GPT', 'OpenAI',
    'smartphone', 'iphone', 'android', 'laptop', 'computer', 'tablet', 'smartwatch',
    'gaming console', 'VR', 'AR', 'smart home', 'IoT', 'wearable', 'headphones',
    'SaaS', 'cloud', 'server', 'network', 'cybersecurity', 'privacy', 'encryption',
    'blockchain', 'cryptocurrency', 'fintech', 'edtech', 'healthtech',
    'tech startup', 'funding round', 'investment', 'IPO', 'acquisition', 'venture capital',
    'Series A', 'Series B', 'unicorn', 'tech company', 'software company',
]

# Each hit adds a small bonus in the fallback scorer
ENGAGEMENT_KEYWORDS: List[str] = [
    'breakthrough', 'revolutionary', 'first-ever', 'new', 'latest',
    'announces', 'launches', 'releases', 'introduces', 'unveils',
    'billion', 'million', 'funding', 'investment', 'acquisition',
]

# Aggregators whose items are never curated
AGGREGATOR_SOURCE_MARKERS: List[str] = ['hacker news', 'y combinator']
AGGREGATOR_TITLE_PREFIXES: List[str] = ['show hn:', 'ask hn:']
AGGREGATOR_DOMAINS: List[str] = ['news.ycombinator.com']

FALLBACKS: Dict[str, str] = {
    'image_url': 'https://images.unsplash.com/photo-1518709268805-4e9042af2176?w=400&h=300&fit=crop',
    'excerpt': 'Stay updated with the latest developments in technology and innovation.',
    'body': 'This article provides insights into recent technological developments and their impact on the industry.',
    'publisher': 'Tech News',
}
