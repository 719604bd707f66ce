"""
Streaming flow pipeline built on LangGraph.

Each node emits UI events (node_added, node_updated, agent_response, ...)
through an event callback while the state carries agents, responses and
validation results from one step to the next.
"""

import time
import logging
from typing import Dict, Any, List, TypedDict, Optional, Callable

from langgraph.graph import StateGraph, END

from debate.agents.debate_agent import extract_response_points
from debate.agents.validator_agent import template_validations
from debate.config import get_flow_config
from debate.models import AgentProfile, AgentResponse, Sentiment, ValidationResult
from debate.tools.charts import generate_chart_data
from debate.tools.proscons import generate_pros_cons
from debate.tools.search import perform_web_search

logger = logging.getLogger(__name__)

SYSTEM_AGENTS = ('search-engine', 'chart-agent', 'proscons-agent')

PROGRESS_STEPS = [
    (20, 'analyzing', "Analyzing query..."),
    (40, 'researching', "Gathering information..."),
    (60, 'reasoning', "Formulating response..."),
    (80, 'validating', "Validating arguments..."),
    (100, 'completed', "Response ready"),
]

STREAM_ERROR_TEXT = "Unable to generate response due to system error."


class DebateState(TypedDict):
    """State passed between pipeline nodes."""

    query: str
    user_id: str
    session_id: Optional[str]
    selected_agents: List[str]
    enabled_system_agents: List[str]

    agents: List[AgentProfile]
    search_data: Optional[Dict[str, Any]]
    chart_data: Optional[Dict[str, Any]]
    proscons_data: Optional[Dict[str, Any]]
    agent_responses: List[AgentResponse]
    validation_results: List[ValidationResult]

    error: Optional[str]


class FlowNodes:
    def __init__(
        self,
        agent_loader: Callable[[str, List[str]], List[AgentProfile]],
        debate_agent,
        validator,
        repository,
        llm_client,
        event_callback: Callable[[str, Dict[str, Any]], None] = None
    ):
        self.agent_loader = agent_loader
        self.debate_agent = debate_agent
        self.validator = validator
        self.repository = repository
        self.llm_client = llm_client
        self.event_callback = event_callback
        self.delay = get_flow_config().get('stream_delay_seconds', 0.0)

    def _emit(self, event_type: str, data: Dict[str, Any]):
        if self.event_callback:
            try:
                self.event_callback(event_type, data)
            except Exception as e:
                logger.error(f"Failed to emit {event_type} event: {e}")

    def _pause(self, factor: float = 1.0):
        if self.delay:
            time.sleep(self.delay * factor)

    def _update_node(self, node_id: str, data: Dict[str, Any]):
        self._emit('node_updated', {'id': node_id, 'updates': {'data': data}})

    def start(self, state: DebateState) -> Dict[str, Any]:
        logger.info(f"--- Flow start: {state['query'][:50]} ---")
        self._emit('node_added', {
            'id': 'start',
            'type': 'question',
            'position': {'x': 400, 'y': 50},
            'data': {'label': "Processing Query", 'question': state['query'], 'status': 'processing'},
        })
        return {'error': None}

    def load_agents(self, state: DebateState) -> Dict[str, Any]:
        agents = self.agent_loader(state['user_id'], state.get('selected_agents') or [])
        if not agents:
            self._emit('error', {'error': "No active agents available"})
            return {'agents': [], 'error': "No active agents available"}
        return {'agents': agents}

    def distributor(self, state: DebateState) -> Dict[str, Any]:
        self._emit('node_added', {
            'id': 'distributor',
            'type': 'debate',
            'position': {'x': 400, 'y': 150},
            'data': {
                'topic': "Task Distribution",
                'status': 'active',
                'rounds': 1,
                'participants': [a.name for a in state['agents']],
            },
        })
        return {'agents': state['agents']}

    def system_agents(self, state: DebateState) -> Dict[str, Any]:
        enabled = state.get('enabled_system_agents') or []
        query = state['query']
        updates: Dict[str, Any] = {'search_data': None, 'chart_data': None, 'proscons_data': None}

        if 'search-engine' in enabled:
            updates['search_data'] = self._run_search(query)
        if 'chart-agent' in enabled:
            updates['chart_data'] = self._run_charts(query)
        if 'proscons-agent' in enabled:
            updates['proscons_data'] = self._run_proscons(query)
        return updates

    def _run_search(self, query: str) -> Optional[Dict[str, Any]]:
        position = {'x': 600, 'y': 150}
        self._emit('node_added', {
            'id': 'search-engine',
            'type': 'searchEngine',
            'position': position,
            'data': {'query': query, 'results': [], 'isLoading': True},
        })
        try:
            search = perform_web_search(query)
        except Exception as e:
            logger.error(f"Search engine error: {e}")
            search = {'success': False, 'error': str(e) or "Search engine unavailable"}

        data: Dict[str, Any] = {'query': query, 'results': search.get('results') or [], 'isLoading': False}
        if search.get('success'):
            data['totalResults'] = search.get('totalResults')
            data['processingTime'] = search.get('processingTime')
        else:
            data['error'] = search.get('error') or "Search failed"
        self._emit('node_updated', {'id': 'search-engine', 'type': 'searchEngine', 'position': position, 'data': data})
        return search if search.get('success') else None

    def _run_charts(self, query: str) -> Optional[Dict[str, Any]]:
        self._emit('node_added', {
            'id': 'chart-agent',
            'type': 'chart-agent',
            'position': {'x': 800, 'y': 150},
            'data': {
                'query': query,
                'chartData': {'type': 'bar', 'data': [], 'isLoading': True, 'error': None},
                'status': 'processing',
            },
        })
        try:
            chart = generate_chart_data(self.llm_client, query, 'bar')
        except Exception as e:
            logger.error(f"Chart agent error: {e}")
            chart = {'success': False, 'error': "Chart agent unavailable"}

        if chart.get('success'):
            chart_data = {
                'type': chart.get('chartType') or 'bar',
                'data': chart.get('data') or [],
                'mermaidCode': chart.get('mermaidCode'),
                'plotlyConfig': chart.get('plotlyConfig'),
                'networkData': chart.get('networkData'),
                'title': chart.get('title'),
                'description': chart.get('description'),
                'isLoading': False,
                'error': None,
            }
            status = 'completed'
        else:
            chart_data = {
                'type': 'bar',
                'data': [],
                'isLoading': False,
                'error': chart.get('error') or "Chart generation failed",
            }
            status = 'error'
        self._update_node('chart-agent', {'query': query, 'chartData': chart_data, 'status': status})
        return chart if chart.get('success') else None

    def _run_proscons(self, query: str) -> Optional[Dict[str, Any]]:
        empty = {'pros': [], 'cons': [], 'summary': '', 'recommendation': ''}
        self._emit('node_added', {
            'id': 'proscons-agent',
            'type': 'proscons-agent',
            'position': {'x': 1000, 'y': 150},
            'data': {
                'query': query,
                'prosConsData': {**empty, 'isLoading': True, 'error': None},
                'status': 'processing',
            },
        })
        try:
            analysis = generate_pros_cons(self.llm_client, query=query)
        except Exception as e:
            logger.error(f"Pros/cons agent error: {e}")
            analysis = {'success': False, 'error': "Pros/cons agent unavailable"}

        if analysis.get('success'):
            data = {
                'pros': analysis['pros'],
                'cons': analysis['cons'],
                'summary': analysis['summary'],
                'recommendation': analysis['recommendation'],
                'isLoading': False,
                'error': None,
            }
            status = 'completed'
        else:
            data = {**empty, 'isLoading': False, 'error': analysis.get('error') or "Pros/cons analysis failed"}
            status = 'error'
        self._update_node('proscons-agent', {'query': query, 'prosConsData': data, 'status': status})
        return analysis if analysis.get('success') else None

    def debate_agents(self, state: DebateState) -> Dict[str, Any]:
        query = state['query']
        responses: List[AgentResponse] = []

        for index, agent in enumerate(state['agents']):
            node_id = f"agent-{agent.id}"
            base = {'name': agent.name, 'role': agent.role.value, 'topic': query}
            self._emit('node_added', {
                'id': node_id,
                'type': 'agent',
                'position': {'x': 200 + index * 200, 'y': 300},
                'data': {**base, 'status': 'processing'},
            })
            self._emit('agent_processing', {'agentId': agent.id, 'agentName': agent.name, 'status': 'processing'})

            try:
                for progress, status, message in PROGRESS_STEPS:
                    self._update_node(node_id, {**base, 'status': status, 'progress': progress, 'message': message})
                    self._pause()
                response = self.debate_agent.generate_response(agent, query)
            except Exception as e:
                logger.error(f"Error generating response for {agent.name}: {e}")
                self._update_node(node_id, {**base, 'status': 'error', 'message': "Failed to generate response"})
                failed = AgentResponse(
                    agent_id=agent.id,
                    agent_name=agent.name,
                    role=agent.role.value,
                    response=STREAM_ERROR_TEXT,
                    confidence=0,
                    sentiment=Sentiment.NEUTRAL.value,
                    error=True
                )
                responses.append(failed)
                self._emit('agent_response', failed.to_dict())
                continue

            self._emit('agent_response', response.to_dict())
            responses.append(response)
            self._stream_points(response, index)
            self._update_node(node_id, {**base, 'status': 'completed'})
            self._pause()

        return {'agent_responses': responses}

    def _stream_points(self, response: AgentResponse, index: int):
        node_id = f"response-{response.agent_id}"
        points = extract_response_points(response.response)
        summary = {
            'agent': response.agent_name,
            'sentiment': response.sentiment,
            'confidence': response.confidence,
            'wordCount': len(response.response.split(' ')),
        }
        self._emit('node_added', {
            'id': node_id,
            'type': 'response',
            'position': {'x': 200 + index * 200, 'y': 450},
            'data': {**summary, 'response': '', 'points': [], 'isStreaming': True},
        })
        for i in range(len(points)):
            self._pause()
            self._update_node(node_id, {
                **summary,
                'response': response.response,
                'points': points[:i + 1],
                'isStreaming': i < len(points) - 1,
            })
        self._update_node(node_id, {**summary, 'response': response.response, 'points': points, 'isStreaming': False})

    def validator_node(self, state: DebateState) -> Dict[str, Any]:
        responses = state.get('agent_responses') or []
        base = {'name': "Validator Agent", 'role': 'moderator', 'topic': "Validation"}
        self._emit('node_added', {
            'id': 'validator',
            'type': 'agent',
            'position': {'x': 400, 'y': 600},
            'data': {**base, 'status': 'processing'},
        })
        self._emit('validation_start', {
            'message': "Starting response validation...",
            'responseCount': len(responses),
        })

        context = state['query']
        search = state.get('search_data')
        if search and search.get('results'):
            limit = get_flow_config().get('search_context_results', 3)
            lines = "\n".join(f"{r.get('title')}: {r.get('snippet')}" for r in search['results'][:limit])
            context = f"{context}\n\nAdditional Context from Web Search:\n{lines}"

        try:
            results = self.validator.validate(responses, context, fallback=False)
        except Exception as e:
            logger.error(f"Error in streaming validation: {e}")
            results = template_validations(responses, include_reasoning=False)

        for result in results:
            self._emit('validation_result', result.to_dict())
            self._pause(0.25)

        self._update_node('validator', {**base, 'status': 'completed'})
        return {'validation_results': results}

    def persist(self, state: DebateState) -> Dict[str, Any]:
        query = state['query']
        responses = [r.to_dict() for r in state.get('agent_responses') or []]
        validations = [v.to_dict() for v in state.get('validation_results') or []]

        session_id = state.get('session_id')
        if not session_id:
            session = self.repository.create_flow_session(state['user_id'], query)
            session_id = session['id'] if session else None
        if session_id:
            self.repository.save_flow_round(session_id, query, responses, validations)

        self._emit('complete', {
            'success': True,
            'sessionId': session_id,
            'query': query,
            'agents': [a.to_dict() for a in state['agents']],
            'agentResponses': responses,
            'validationResults': validations,
            'processingTime': max((r['processingTime'] for r in responses), default=0),
        })
        return {'session_id': session_id}


def build_flow_graph(
    agent_loader,
    debate_agent,
    validator,
    repository,
    llm_client,
    event_callback=None
):
    nodes = FlowNodes(
        agent_loader=agent_loader,
        debate_agent=debate_agent,
        validator=validator,
        repository=repository,
        llm_client=llm_client,
        event_callback=event_callback
    )
    workflow = StateGraph(DebateState)

    workflow.add_node("start", nodes.start)
    workflow.add_node("load_agents", nodes.load_agents)
    workflow.add_node("distributor", nodes.distributor)
    workflow.add_node("system_agents", nodes.system_agents)
    workflow.add_node("debate_agents", nodes.debate_agents)
    workflow.add_node("validator", nodes.validator_node)
    workflow.add_node("persist", nodes.persist)

    def check_agents(state):
        if state.get('error'):
            return "stop"
        return "distributor"

    workflow.set_entry_point("start")
    workflow.add_edge("start", "load_agents")
    workflow.add_conditional_edges(
        "load_agents",
        check_agents,
        {
            "stop": END,
            "distributor": "distributor"
        }
    )
    workflow.add_edge("distributor", "system_agents")
    workflow.add_edge("system_agents", "debate_agents")
    workflow.add_edge("debate_agents", "validator")
    workflow.add_edge("validator", "persist")
    workflow.add_edge("persist", END)

    return workflow.compile()


def initial_state(
    query: str,
    user_id: str,
    selected_agents: Optional[List[str]] = None,
    enabled_system_agents: Optional[List[str]] = None,
    session_id: Optional[str] = None
) -> Dict[str, Any]:
    return {
        "query": query,
        "user_id": user_id,
        "session_id": session_id,
        "selected_agents": list(selected_agents or []),
        "enabled_system_agents": [a for a in enabled_system_agents or [] if a in SYSTEM_AGENTS],
        "agents": [],
        "search_data": None,
        "chart_data": None,
        "proscons_data": None,
        "agent_responses": [],
        "validation_results": [],
        "error": None,
    }
